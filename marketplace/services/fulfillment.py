"""
Fulfillment Pipeline - Moves one paid order from pending to delivered.

A single database transaction:

1. Claim the order with a conditional UPDATE (pending -> paid). If nothing
   was claimed the order is either already paid (idempotent replay, no side
   effects) or does not exist.
2. Validation pass: lock the order's products and allocate every item against
   a working copy of their stock. Any shortfall rolls the whole transaction
   back, so the order stays pending and no stock is touched.
3. Commit pass: persist remaining stock, per-item slices and the aggregate
   delivered content.
4. Credit the reseller wallet through the ledger.
5. Commit, then hand the delivery to the notification dispatcher in the
   background. Notification failures never undo the above.

NO DICTIONARIES - All operations use strongly typed domain models.
"""

import time
from datetime import UTC, datetime

from marketplace.config import settings
from marketplace.db.models import OrderItem, Product
from marketplace.exceptions import DataIntegrityError, OrderNotFoundError, OutOfStockError
from marketplace.models.api import FulfillmentSource, OrderStatus
from marketplace.models.domain import (
    AllocationResult,
    DeliveryNotice,
    FulfillmentResult,
    WebhookTarget,
)
from marketplace.observability import get_logger, metrics
from marketplace.observability.tracing import trace_operation
from marketplace.services.notifications import NotificationDispatcher, build_whatsapp_link
from marketplace.services.stock_allocator import allocate, count_stock
from marketplace.services.stores import MarketplaceStore
from marketplace.services.wallet import WalletService

logger = get_logger(__name__)


class FulfillmentPipeline:
    """Delivers stock for a paid order exactly once."""

    def __init__(
        self, store: MarketplaceStore, dispatcher: NotificationDispatcher | None = None
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.wallet = WalletService(store)

    async def fulfill(self, order_id: int, source: FulfillmentSource) -> FulfillmentResult:
        """
        Fulfill an order whose payment has been confirmed.

        Returns the stored delivery with replayed=True when the order was
        already paid.

        Raises:
            OrderNotFoundError: Order doesn't exist
            OutOfStockError: An item cannot be satisfied (order stays pending)
        """
        start = time.perf_counter()
        with trace_operation("order_fulfillment", order_id=order_id, source=source.value):
            try:
                result = await self._fulfill(order_id, source)
            except OutOfStockError as e:
                metrics.record_fulfillment(source.value, "out_of_stock", time.perf_counter() - start)
                logger.warning(
                    "fulfillment_out_of_stock",
                    order_id=order_id,
                    source=source.value,
                    product_id=e.product_id,
                    product_name=e.product_name,
                    available=e.available,
                    required=e.required,
                )
                raise
            except OrderNotFoundError:
                metrics.record_fulfillment(source.value, "not_found", time.perf_counter() - start)
                raise

        duration = time.perf_counter() - start
        if result.replayed:
            metrics.record_fulfillment(source.value, "replayed", duration)
            return result

        notice = result.notice
        metrics.record_fulfillment(
            source.value,
            "fulfilled",
            duration,
            amount_minor=notice.total_amount_minor if notice else None,
        )
        if self.dispatcher is not None and notice is not None:
            self.dispatcher.dispatch(notice)
        return result

    async def _fulfill(self, order_id: int, source: FulfillmentSource) -> FulfillmentResult:
        order = await self.store.claim_pending_order(order_id, datetime.now(UTC))
        if order is None:
            return await self._replay(order_id, source)

        try:
            items = await self.store.get_order_items(order.id)
            if not items:
                raise DataIntegrityError(f"Order {order.id} has no items")

            products = await self.store.lock_products(item.product_id for item in items)
            plan, remaining = self._plan_allocation(items, products)

            delivered_content = await self._apply_allocation(plan, products, remaining)

            await self.wallet.credit_order(order)
            reseller = (
                await self.store.get_reseller(order.reseller_id)
                if order.reseller_id is not None
                else None
            )
            store_name = reseller.store_name if reseller else settings.default_store_name

            whatsapp_link = None
            if order.whatsapp:
                whatsapp_link = build_whatsapp_link(
                    order.whatsapp,
                    order.id,
                    delivered_content,
                    store_name,
                    country_code=settings.whatsapp_country_code,
                    preview_lines=settings.whatsapp_preview_lines,
                )
            await self.store.record_delivery(order, delivered_content, whatsapp_link)

            webhook_targets: tuple[WebhookTarget, ...] = ()
            if reseller is not None:
                webhook_targets = tuple(
                    WebhookTarget(webhook_id=hook.id, url=hook.url, secret=hook.secret)
                    for hook in await self.store.list_active_webhooks(reseller.id)
                )

            await self.store.commit()
        except Exception:
            await self.store.rollback()
            raise

        logger.info(
            "order_fulfilled",
            order_id=order.id,
            source=source.value,
            items=len(items),
            reseller_id=order.reseller_id,
            total_amount_minor=order.total_amount_minor,
        )

        notice = DeliveryNotice(
            order_id=order.id,
            email=order.email,
            whatsapp=order.whatsapp,
            product_names=tuple(item.product_name for item in items),
            delivered_content=delivered_content,
            store_name=store_name,
            reseller_id=order.reseller_id,
            total_amount_minor=order.total_amount_minor,
            webhook_targets=webhook_targets,
        )
        return FulfillmentResult(
            order_id=order.id,
            status=OrderStatus.PAID,
            delivered_content=delivered_content,
            replayed=False,
            source=source,
            notice=notice,
        )

    async def _replay(self, order_id: int, source: FulfillmentSource) -> FulfillmentResult:
        """Nothing was claimed: report the existing delivery or a missing order."""
        await self.store.rollback()
        order = await self.store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.status != OrderStatus.PAID:
            raise DataIntegrityError(f"Order {order_id} could not be claimed in status {order.status}")

        logger.info("order_already_paid", order_id=order_id, source=source.value)
        return FulfillmentResult(
            order_id=order.id,
            status=OrderStatus.PAID,
            delivered_content=order.delivered_content or "",
            replayed=True,
            source=source,
        )

    @staticmethod
    def _plan_allocation(
        items: list[OrderItem], products: dict[int, Product]
    ) -> tuple[list[tuple[OrderItem, AllocationResult]], dict[int, str]]:
        """
        Validation pass: allocate every item without touching persisted stock.

        Items sharing a product draw from the same working copy, so two units
        of one product need two lines.
        """
        working = {product_id: product.stock for product_id, product in products.items()}
        plan: list[tuple[OrderItem, AllocationResult]] = []

        for item in items:
            product = products.get(item.product_id)
            if product is None:
                raise OutOfStockError(item.product_id, item.product_name, 0, item.quantity)

            allocation = allocate(working[product.id], item.quantity)
            if not allocation.ok:
                raise OutOfStockError(
                    product.id, product.name, count_stock(working[product.id]), item.quantity
                )
            working[product.id] = allocation.remaining_stock_text
            plan.append((item, allocation))

        return plan, working

    async def _apply_allocation(
        self,
        plan: list[tuple[OrderItem, AllocationResult]],
        products: dict[int, Product],
        remaining: dict[int, str],
    ) -> str:
        """Commit pass: persist stock and delivered slices, return the aggregate."""
        for product_id, stock_text in remaining.items():
            await self.store.update_product_stock(products[product_id], stock_text)

        slices: list[str] = []
        for item, allocation in plan:
            item_content = "\n".join(allocation.delivered)
            await self.store.update_order_item(item, item_content)
            slices.append(item_content)

        return "\n".join(slices).strip()
