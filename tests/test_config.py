import dataclasses

import pytest

from sluice import Database, DatabaseConfig, SluiceError
from sluice.transaction import IsolationLevel, TransactionManager

from .conftest import mock_connection, mock_interface


def test_defaults():
    config = DatabaseConfig()
    assert config.use_nested_transactions is False
    assert config.default_isolation_level is None
    assert config.default_read_only is False
    assert config.default_max_attempts == 3
    assert config.default_min_retry_delay == 0
    assert config.default_max_retry_delay == 0
    assert config.warn_long_queries_duration is None
    assert config.log_sql is False


@pytest.mark.parametrize(
    "field,value",
    (
        ("default_max_attempts", 0),
        ("default_min_retry_delay", -1),
        ("default_max_retry_delay", -0.5),
        ("log_too_many_result_sets_threshold", -1),
    ),
)
def test_invalid_values(field, value):
    with pytest.raises(SluiceError):
        DatabaseConfig(**{field: value})


def test_config_is_frozen():
    config = DatabaseConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.log_sql = True


def test_manager_copies_config_defaults():
    config = DatabaseConfig(
        default_isolation_level=IsolationLevel.REPEATABLE_READ,
        default_read_only=True,
        default_max_attempts=5,
        default_min_retry_delay=0.1,
        default_max_retry_delay=0.4,
    )
    db = Database(mock_interface(mock_connection()), config)
    manager = TransactionManager(db)

    assert manager.default_isolation_level is IsolationLevel.REPEATABLE_READ
    assert manager.default_read_only is True
    assert manager.default_max_attempts == 5
    assert manager.default_min_retry_delay == 0.1
    assert manager.default_max_retry_delay == 0.4

    manager.default_max_attempts = 1
    assert db.config.default_max_attempts == 5
    with pytest.raises(SluiceError):
        manager.default_max_attempts = 0
