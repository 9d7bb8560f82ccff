from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sluice.config import DatabaseConfig

if TYPE_CHECKING:
    from sluice.base.interface import BaseInterface


class Database:
    """Descriptor of one connected database.

    Equality is identity: two descriptors for the same DSN are still two
    databases, each with its own transaction manager.
    """

    def __init__(
        self,
        interface: BaseInterface,
        config: Optional[DatabaseConfig] = None,
    ) -> None:
        self.interface = interface
        self.config = config or DatabaseConfig()
        self.dialect = interface.dialect

    @property
    def use_nested_transactions(self) -> bool:
        return self.config.use_nested_transactions

    @property
    def url(self) -> str:
        return self.interface.dsn

    def __repr__(self) -> str:
        return f"<Database {self.dialect} {self.url}>"
