"""
Store Protocols - Persistence interfaces consumed by the fulfillment core.

The fulfillment pipeline, payment reconciler, wallet and expiry janitor only
talk to these protocols. The PostgreSQL implementation lives in
marketplace.db.store; tests substitute an in-memory store.

All mutating calls participate in the store's current transaction and are
made durable by commit().
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from marketplace.db.models import (
    Order,
    OrderItem,
    Product,
    Reseller,
    ResellerWebhook,
    WalletLedgerEntry,
    WithdrawalRequest,
)
from marketplace.models.api import WithdrawalStatus


class ProductStore(Protocol):
    """Products and their stock queues."""

    async def get_product(self, product_id: int) -> Product | None: ...

    async def get_products(self, product_ids: Iterable[int]) -> dict[int, Product]: ...

    async def lock_products(self, product_ids: Iterable[int]) -> dict[int, Product]:
        """Load and row-lock products in ascending id order."""
        ...

    async def update_product_stock(self, product: Product, stock_text: str) -> None: ...


class OrderStore(Protocol):
    """Orders and their line items."""

    async def get_order(self, order_id: int) -> Order | None: ...

    async def find_order_by_billing_id(self, billing_id: str) -> Order | None: ...

    async def claim_pending_order(self, order_id: int, paid_at: datetime) -> Order | None:
        """
        Move an order from pending to paid in a single conditional update.

        Returns the refreshed order when this call performed the transition,
        None when no pending order with that id exists.
        """
        ...

    async def get_order_items(self, order_id: int) -> list[OrderItem]: ...

    async def update_order_item(self, item: OrderItem, delivered_content: str) -> None: ...

    async def record_delivery(
        self, order: Order, delivered_content: str, whatsapp_link: str | None
    ) -> None: ...

    async def list_pending_orders_with_billing(self, limit: int) -> list[Order]: ...

    async def list_expired_pending_order_ids(self, cutoff: datetime) -> list[int]: ...

    async def delete_pending_order(self, order_id: int) -> bool:
        """Delete an order (and its items) only if it is still pending."""
        ...


class WalletStore(Protocol):
    """Resellers, their ledger and withdrawal requests."""

    async def get_reseller(self, reseller_id: int) -> Reseller | None: ...

    async def lock_reseller(self, reseller_id: int) -> Reseller | None: ...

    async def find_ledger_entry(
        self, reseller_id: int, idempotency_key: str
    ) -> WalletLedgerEntry | None: ...

    async def add_ledger_entry(self, entry: WalletLedgerEntry) -> None: ...

    async def list_ledger_entries(self, reseller_id: int, limit: int) -> list[WalletLedgerEntry]: ...

    async def sum_ledger(self, reseller_id: int) -> int: ...

    async def add_withdrawal(self, withdrawal: WithdrawalRequest) -> None:
        """Persist a new withdrawal request and assign its id."""
        ...

    async def lock_withdrawal(self, withdrawal_id: int) -> WithdrawalRequest | None: ...

    async def list_withdrawals(
        self, reseller_id: int | None = None, status: WithdrawalStatus | None = None
    ) -> list[WithdrawalRequest]: ...

    async def list_active_webhooks(self, reseller_id: int) -> list[ResellerWebhook]: ...


class MarketplaceStore(ProductStore, OrderStore, WalletStore, Protocol):
    """The full store used by one unit of work."""

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...
