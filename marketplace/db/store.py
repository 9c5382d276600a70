"""
SQL Store - PostgreSQL implementation of the fulfillment store protocols.

Row locks (SELECT ... FOR UPDATE) serialize writers of the same product,
reseller or withdrawal; order transitions use a conditional UPDATE so that
only one trigger can move an order out of pending.
"""

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.models import (
    Order,
    OrderItem,
    Product,
    Reseller,
    ResellerWebhook,
    WalletLedgerEntry,
    WithdrawalRequest,
)
from marketplace.db.session import get_write_session
from marketplace.models.api import OrderStatus, WithdrawalStatus


class SqlMarketplaceStore:
    """MarketplaceStore backed by one AsyncSession (one transaction at a time)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Transaction control
    # ------------------------------------------------------------------

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def get_product(self, product_id: int) -> Product | None:
        return await self.session.get(Product, product_id)

    async def get_products(self, product_ids: Iterable[int]) -> dict[int, Product]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        stmt = select(Product).where(Product.id.in_(ids))
        result = await self.session.execute(stmt)
        return {product.id: product for product in result.scalars().all()}

    async def lock_products(self, product_ids: Iterable[int]) -> dict[int, Product]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        # Consistent lock order across transactions avoids deadlocks
        stmt = (
            select(Product)
            .where(Product.id.in_(ids))
            .order_by(Product.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return {product.id: product for product in result.scalars().all()}

    async def update_product_stock(self, product: Product, stock_text: str) -> None:
        product.stock = stock_text
        await self.session.flush()

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def get_order(self, order_id: int) -> Order | None:
        stmt = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_order_by_billing_id(self, billing_id: str) -> Order | None:
        stmt = select(Order).where(Order.billing_id == billing_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def claim_pending_order(self, order_id: int, paid_at: datetime) -> Order | None:
        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.PENDING)
            .values(status=OrderStatus.PAID, paid_at=paid_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return None
        return await self.get_order(order_id)

    async def get_order_items(self, order_id: int) -> list[OrderItem]:
        stmt = select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def update_order_item(self, item: OrderItem, delivered_content: str) -> None:
        item.delivered_content = delivered_content
        await self.session.flush()

    async def record_delivery(
        self, order: Order, delivered_content: str, whatsapp_link: str | None
    ) -> None:
        order.delivered_content = delivered_content
        order.whatsapp_delivery_link = whatsapp_link
        await self.session.flush()

    async def list_pending_orders_with_billing(self, limit: int) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.status == OrderStatus.PENDING, Order.billing_id.isnot(None))
            .order_by(Order.created_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_expired_pending_order_ids(self, cutoff: datetime) -> list[int]:
        stmt = (
            select(Order.id)
            .where(Order.status == OrderStatus.PENDING, Order.created_at < cutoff)
            .order_by(Order.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_pending_order(self, order_id: int) -> bool:
        # order_items go with the order through ON DELETE CASCADE
        stmt = (
            delete(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.PENDING)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Wallet
    # ------------------------------------------------------------------

    async def get_reseller(self, reseller_id: int) -> Reseller | None:
        return await self.session.get(Reseller, reseller_id)

    async def lock_reseller(self, reseller_id: int) -> Reseller | None:
        stmt = (
            select(Reseller)
            .where(Reseller.id == reseller_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_ledger_entry(
        self, reseller_id: int, idempotency_key: str
    ) -> WalletLedgerEntry | None:
        stmt = select(WalletLedgerEntry).where(
            WalletLedgerEntry.reseller_id == reseller_id,
            WalletLedgerEntry.idempotency_key == idempotency_key,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_ledger_entry(self, entry: WalletLedgerEntry) -> None:
        self.session.add(entry)
        await self.session.flush()

    async def list_ledger_entries(self, reseller_id: int, limit: int) -> list[WalletLedgerEntry]:
        stmt = (
            select(WalletLedgerEntry)
            .where(WalletLedgerEntry.reseller_id == reseller_id)
            .order_by(WalletLedgerEntry.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def sum_ledger(self, reseller_id: int) -> int:
        stmt = select(func.coalesce(func.sum(WalletLedgerEntry.amount_minor), 0)).where(
            WalletLedgerEntry.reseller_id == reseller_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def add_withdrawal(self, withdrawal: WithdrawalRequest) -> None:
        self.session.add(withdrawal)
        await self.session.flush()

    async def lock_withdrawal(self, withdrawal_id: int) -> WithdrawalRequest | None:
        stmt = (
            select(WithdrawalRequest)
            .where(WithdrawalRequest.id == withdrawal_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_withdrawals(
        self, reseller_id: int | None = None, status: WithdrawalStatus | None = None
    ) -> list[WithdrawalRequest]:
        stmt = select(WithdrawalRequest).order_by(WithdrawalRequest.created_at.desc())
        if reseller_id is not None:
            stmt = stmt.where(WithdrawalRequest.reseller_id == reseller_id)
        if status is not None:
            stmt = stmt.where(WithdrawalRequest.status == status)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_active_webhooks(self, reseller_id: int) -> list[ResellerWebhook]:
        stmt = select(ResellerWebhook).where(
            ResellerWebhook.reseller_id == reseller_id, ResellerWebhook.active.is_(True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


@asynccontextmanager
async def open_store() -> AsyncIterator[SqlMarketplaceStore]:
    """
    Open a store on a fresh write session.

    Usage:
        async with open_store() as store:
            await FulfillmentPipeline(store, dispatcher).fulfill(order_id, source)
    """
    async with get_write_session() as session:
        yield SqlMarketplaceStore(session)
