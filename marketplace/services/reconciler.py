"""
Payment Reconciler - Turns payment signals into fulfillment calls.

Three entry paths share FulfillmentPipeline.fulfill(), whose conditional
claim guarantees the pending -> paid transition happens once:

- handle_webhook(): signed provider webhook
- PaymentPoller: periodic gateway status checks for pending orders
- approve(): admin or vendor manual approval
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

from marketplace.exceptions import OrderNotFoundError, OutOfStockError, PaymentProviderError
from marketplace.models.api import FulfillmentSource
from marketplace.models.domain import FulfillmentResult, SweepResult, WebhookOutcome
from marketplace.observability import get_logger, metrics
from marketplace.observability.logging import log_context
from marketplace.services.fulfillment import FulfillmentPipeline
from marketplace.services.notifications import NotificationDispatcher
from marketplace.services.payment_provider import PaymentGateway
from marketplace.services.stores import MarketplaceStore

logger = get_logger(__name__)

StoreFactory = Callable[[], AbstractAsyncContextManager[MarketplaceStore]]


class PaymentReconciler:
    """Routes every payment confirmation through the fulfillment pipeline."""

    def __init__(
        self,
        store: MarketplaceStore,
        gateway: PaymentGateway | None,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.pipeline = FulfillmentPipeline(store, dispatcher)

    async def confirm_payment(self, order_id: int, source: FulfillmentSource) -> FulfillmentResult:
        """Single entry point for a confirmed payment."""
        return await self.pipeline.fulfill(order_id, source)

    async def approve(self, order_id: int, source: FulfillmentSource) -> FulfillmentResult:
        """
        Manual approval by an authorized admin or vendor.

        Approving an already-paid order is a successful no-op.
        """
        logger.info("manual_approval_requested", order_id=order_id, source=source.value)
        return await self.confirm_payment(order_id, source)

    async def handle_webhook(self, payload: bytes, signature: str | None) -> WebhookOutcome:
        """
        Verify a provider webhook and fulfill the order it confirms.

        Raises:
            WebhookVerificationError: Missing or invalid signature
            PaymentProviderError: No gateway configured
        """
        if self.gateway is None:
            raise PaymentProviderError("payment gateway not configured")

        notification = self.gateway.verify_webhook(payload, signature)
        provider = self.gateway.name

        if not notification.is_paid:
            metrics.record_webhook(provider, "ignored")
            logger.info(
                "webhook_ignored_not_paid",
                event_type=notification.event_type,
                order_id=notification.order_id,
            )
            return WebhookOutcome(outcome="ignored", order_id=notification.order_id)

        order_id = notification.order_id
        if order_id is None and notification.billing_id:
            order = await self.store.find_order_by_billing_id(notification.billing_id)
            order_id = order.id if order else None

        if order_id is None:
            metrics.record_webhook(provider, "unmatched")
            logger.warning(
                "webhook_order_unmatched",
                event_type=notification.event_type,
                billing_id=notification.billing_id,
            )
            return WebhookOutcome(outcome="unmatched")

        if notification.amount_minor is not None:
            order = await self.store.get_order(order_id)
            if order is not None and order.total_amount_minor != notification.amount_minor:
                logger.warning(
                    "webhook_amount_mismatch",
                    order_id=order_id,
                    order_total_minor=order.total_amount_minor,
                    paid_amount_minor=notification.amount_minor,
                )

        try:
            result = await self.confirm_payment(order_id, FulfillmentSource.WEBHOOK)
        except OrderNotFoundError:
            metrics.record_webhook(provider, "unknown_order")
            logger.warning("webhook_unknown_order", order_id=order_id)
            return WebhookOutcome(outcome="unknown_order", order_id=order_id)
        except OutOfStockError as e:
            # Order stays pending; the payment poll retries it once stock is back
            metrics.record_webhook(provider, "out_of_stock")
            logger.error(
                "webhook_paid_order_out_of_stock",
                order_id=order_id,
                product_name=e.product_name,
            )
            return WebhookOutcome(outcome="out_of_stock", order_id=order_id)

        outcome = "replayed" if result.replayed else "fulfilled"
        metrics.record_webhook(provider, outcome)
        return WebhookOutcome(outcome=outcome, order_id=order_id)

    async def check_billing(self, order_id: int, billing_id: str) -> FulfillmentResult | None:
        """
        Poll the gateway for one order and fulfill it if paid.

        Returns None while the billing is unpaid.
        """
        if self.gateway is None:
            raise PaymentProviderError("payment gateway not configured")

        status = await self.gateway.check_payment_status(billing_id)
        if not status.is_paid:
            metrics.record_payment_poll("unpaid")
            return None

        metrics.record_payment_poll("paid")
        logger.info("payment_confirmed_by_poll", order_id=order_id, billing_status=status.status)
        return await self.confirm_payment(order_id, FulfillmentSource.POLL)


class PaymentPoller:
    """
    Periodic sweep over pending orders with a billing reference.

    Every order is checked in its own store (own transaction); one order's
    failure is logged and the sweep continues.
    """

    def __init__(
        self,
        gateway: PaymentGateway | None,
        dispatcher: NotificationDispatcher | None,
        store_factory: StoreFactory,
        batch_size: int = 200,
    ) -> None:
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.store_factory = store_factory
        self.batch_size = batch_size

    async def run_once(self) -> SweepResult:
        """Check every pending billed order once."""
        if self.gateway is None:
            logger.debug("payment_poll_skipped_no_gateway")
            return SweepResult(examined=0, succeeded=0, failed=0)

        async with self.store_factory() as store:
            pending = await store.list_pending_orders_with_billing(self.batch_size)
            targets = [(order.id, order.billing_id) for order in pending if order.billing_id]

        fulfilled = 0
        failed = 0
        for order_id, billing_id in targets:
            with log_context(job="payment_poll", order_id=order_id):
                try:
                    async with self.store_factory() as store:
                        reconciler = PaymentReconciler(store, self.gateway, self.dispatcher)
                        result = await reconciler.check_billing(order_id, billing_id)
                    if result is not None and not result.replayed:
                        fulfilled += 1
                except Exception as e:
                    failed += 1
                    metrics.record_payment_poll("error")
                    metrics.record_error(type(e).__name__, "payment_poll")
                    logger.error(
                        "payment_poll_order_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )

        if targets:
            logger.info(
                "payment_poll_completed",
                examined=len(targets),
                fulfilled=fulfilled,
                failed=failed,
            )
        return SweepResult(examined=len(targets), succeeded=fulfilled, failed=failed)
