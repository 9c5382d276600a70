"""
Expiry Janitor - Deletes orders left unpaid past their TTL.

Unpaid orders have no cancelled state; they are removed (items cascade).
The delete is conditional on the order still being pending, so an order
paid between listing and deletion survives.
"""

from datetime import UTC, datetime, timedelta

from marketplace.models.domain import SweepResult
from marketplace.observability import get_logger, metrics
from marketplace.services.reconciler import StoreFactory

logger = get_logger(__name__)


class ExpiryJanitor:
    """Best-effort hourly cleanup of stale pending orders."""

    def __init__(self, store_factory: StoreFactory, ttl: timedelta) -> None:
        self.store_factory = store_factory
        self.ttl = ttl

    async def run_once(self, now: datetime | None = None) -> SweepResult:
        """Delete every pending order created before now - ttl."""
        cutoff = (now or datetime.now(UTC)) - self.ttl
        deleted = 0
        failed = 0

        async with self.store_factory() as store:
            order_ids = await store.list_expired_pending_order_ids(cutoff)

            for order_id in order_ids:
                try:
                    if await store.delete_pending_order(order_id):
                        await store.commit()
                        deleted += 1
                        metrics.expired_orders_deleted_total.inc()
                        logger.info("expired_order_deleted", order_id=order_id)
                    else:
                        await store.rollback()
                except Exception as e:
                    failed += 1
                    await store.rollback()
                    metrics.record_error(type(e).__name__, "expiry_sweep")
                    logger.error(
                        "expired_order_delete_failed",
                        order_id=order_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )

        if order_ids:
            logger.info(
                "expiry_sweep_completed",
                cutoff=cutoff.isoformat(),
                examined=len(order_ids),
                deleted=deleted,
                failed=failed,
            )
        return SweepResult(examined=len(order_ids), succeeded=deleted, failed=failed)
