import asyncio

import pytest

from sluice import DatabaseConfig

from .conftest import mock_connection, mock_interface


@pytest.fixture
def interface():
    interface = mock_interface(mock_connection())
    interface.acquire.side_effect = lambda *_: mock_connection()
    return interface


async def test_concurrent_transactions_keep_their_own_binding(
    sluice, interface
):
    """
    TEST: Transactions running in parallel tasks each see their own
    transaction as current, and nothing is left bound afterwards.
    """
    await sluice.connect(interface=interface)

    async def work(transaction):
        await asyncio.sleep(0)
        assert sluice.current() is transaction
        await transaction.get_connection()
        await asyncio.sleep(0.01)
        assert sluice.current() is transaction
        return transaction

    transactions = await asyncio.gather(
        *(sluice.transaction(work) for _ in range(3))
    )

    assert len({transaction.id for transaction in transactions}) == 3
    assert all(transaction.outer is None for transaction in transactions)
    assert interface.acquire.await_count == 3
    assert sluice.current_or_none() is None


async def test_nested_and_top_level_work_in_parallel(sluice, interface):
    await sluice.connect(
        interface=interface,
        config=DatabaseConfig(use_nested_transactions=True),
    )

    async def inner(nested):
        await asyncio.sleep(0.01)
        assert sluice.current() is nested
        return nested

    async def nested_work(transaction):
        nested = await sluice.transaction(inner)
        assert sluice.current() is transaction
        return transaction, nested

    async def top_level_work(transaction):
        await asyncio.sleep(0.005)
        assert sluice.current() is transaction
        return transaction

    (outer, nested), top_level = await asyncio.gather(
        sluice.transaction(nested_work), sluice.transaction(top_level_work)
    )

    assert nested.outer is outer
    assert nested.use_savepoints
    assert top_level.outer is None
    assert top_level is not outer
    assert sluice.current_or_none() is None
