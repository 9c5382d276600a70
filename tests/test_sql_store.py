"""
Tests for SqlMarketplaceStore.

Uses the mock AsyncSession; statements are inspected, not executed.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.dialects import postgresql

from marketplace.db.models import Order, Product, WalletLedgerEntry
from marketplace.db.store import SqlMarketplaceStore
from marketplace.models.api import OrderStatus


def compiled(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestClaimPendingOrder:
    """Tests for the conditional pending -> paid update."""

    async def test_claimed(self, db_session: AsyncMock, result_factory) -> None:
        order = MagicMock(spec=Order)
        db_session.execute = AsyncMock(
            side_effect=[result_factory(rowcount=1), result_factory(scalar=order)]
        )
        store = SqlMarketplaceStore(db_session)

        claimed = await store.claim_pending_order(42, datetime.now(UTC))

        assert claimed is order
        update_sql = compiled(db_session.execute.await_args_list[0].args[0])
        assert update_sql.startswith("UPDATE orders SET")
        assert "orders.status =" in update_sql.split("WHERE", 1)[1]

    async def test_not_claimed(self, db_session: AsyncMock, result_factory) -> None:
        db_session.execute = AsyncMock(return_value=result_factory(rowcount=0))
        store = SqlMarketplaceStore(db_session)

        assert await store.claim_pending_order(42, datetime.now(UTC)) is None
        assert db_session.execute.await_count == 1


class TestDeletePendingOrder:
    """Tests for the conditional delete used by the expiry sweep."""

    async def test_deleted(self, db_session: AsyncMock, result_factory) -> None:
        db_session.execute = AsyncMock(return_value=result_factory(rowcount=1))

        assert await SqlMarketplaceStore(db_session).delete_pending_order(7) is True
        sql = compiled(db_session.execute.await_args.args[0])
        assert sql.startswith("DELETE FROM orders")
        assert "orders.status" in sql

    async def test_already_gone_or_paid(self, db_session: AsyncMock, result_factory) -> None:
        db_session.execute = AsyncMock(return_value=result_factory(rowcount=0))

        assert await SqlMarketplaceStore(db_session).delete_pending_order(7) is False


class TestLocking:
    """Tests for row-locking reads."""

    async def test_lock_products_sorted_for_update(
        self, db_session: AsyncMock, result_factory
    ) -> None:
        first = MagicMock(spec=Product)
        first.id = 1
        second = MagicMock(spec=Product)
        second.id = 2
        db_session.execute = AsyncMock(return_value=result_factory(scalars=[first, second]))

        products = await SqlMarketplaceStore(db_session).lock_products([2, 1, 2])

        assert products == {1: first, 2: second}
        sql = compiled(db_session.execute.await_args.args[0])
        assert "FOR UPDATE" in sql
        assert "ORDER BY products.id" in sql

    async def test_lock_products_empty(self, db_session: AsyncMock) -> None:
        assert await SqlMarketplaceStore(db_session).lock_products([]) == {}
        db_session.execute.assert_not_awaited()

    async def test_lock_reseller_for_update(self, db_session: AsyncMock) -> None:
        await SqlMarketplaceStore(db_session).lock_reseller(3)

        assert "FOR UPDATE" in compiled(db_session.execute.await_args.args[0])


class TestWrites:
    """Tests for flushes and transaction control."""

    async def test_update_product_stock_flushes(self, db_session: AsyncMock) -> None:
        product = MagicMock(spec=Product)

        await SqlMarketplaceStore(db_session).update_product_stock(product, "KEY2")

        assert product.stock == "KEY2"
        db_session.flush.assert_awaited_once()

    async def test_add_ledger_entry(self, db_session: AsyncMock) -> None:
        entry = MagicMock(spec=WalletLedgerEntry)

        await SqlMarketplaceStore(db_session).add_ledger_entry(entry)

        db_session.add.assert_called_once_with(entry)
        db_session.flush.assert_awaited_once()

    async def test_sum_ledger(self, db_session: AsyncMock, result_factory) -> None:
        db_session.execute = AsyncMock(return_value=result_factory(scalar=4500))

        assert await SqlMarketplaceStore(db_session).sum_ledger(1) == 4500

    async def test_commit_and_rollback(self, db_session: AsyncMock) -> None:
        store = SqlMarketplaceStore(db_session)

        await store.commit()
        await store.rollback()

        db_session.commit.assert_awaited_once()
        db_session.rollback.assert_awaited_once()

    async def test_list_pending_orders_with_billing(
        self, db_session: AsyncMock, result_factory
    ) -> None:
        order = MagicMock(spec=Order)
        order.status = OrderStatus.PENDING
        db_session.execute = AsyncMock(return_value=result_factory(scalars=[order]))

        orders = await SqlMarketplaceStore(db_session).list_pending_orders_with_billing(50)

        assert orders == [order]
        sql = compiled(db_session.execute.await_args.args[0])
        assert "billing_id IS NOT NULL" in sql
