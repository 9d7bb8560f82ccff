from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from sluice.exception import SluiceError

if TYPE_CHECKING:
    from sluice.transaction.interfaces import IsolationLevel


@dataclass(frozen=True)
class DatabaseConfig:
    """Policy defaults for one database.

    Retry delays and durations are in seconds. A transaction manager copies
    these values when it is created; changing the manager afterwards only
    affects transactions that start later.
    """

    use_nested_transactions: bool = False
    default_isolation_level: Optional[IsolationLevel] = None
    default_read_only: bool = False
    default_max_attempts: int = 3
    default_min_retry_delay: float = 0.0
    default_max_retry_delay: float = 0.0
    warn_long_queries_duration: Optional[float] = None
    log_too_many_result_sets_threshold: int = 0
    log_sql: bool = False

    def __post_init__(self) -> None:
        if self.default_max_attempts <= 0:
            raise SluiceError(
                "default_max_attempts: must be an integer greater than 0"
            )
        if self.default_min_retry_delay < 0:
            raise SluiceError("default_min_retry_delay: must not be negative")
        if self.default_max_retry_delay < 0:
            raise SluiceError("default_max_retry_delay: must not be negative")
        if self.log_too_many_result_sets_threshold < 0:
            raise SluiceError(
                "log_too_many_result_sets_threshold: must not be negative"
            )
