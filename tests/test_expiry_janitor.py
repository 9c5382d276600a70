"""
Tests for ExpiryJanitor.
"""

from datetime import timedelta
from unittest.mock import patch

from marketplace.models.api import OrderStatus
from marketplace.services.expiry_janitor import ExpiryJanitor

TTL = timedelta(hours=24)


class TestExpirySweep:
    """Tests for the pending order sweep."""

    async def test_deletes_stale_pending_order(self, store, seed, store_factory, fixed_datetime) -> None:
        """Pending for 25h is deleted, pending for 1h is kept."""
        reseller = seed.reseller()
        product = seed.product(reseller, stock="KEY1")
        stale = seed.order([product], reseller, created_at=fixed_datetime - timedelta(hours=25))
        fresh = seed.order([product], reseller, created_at=fixed_datetime - timedelta(hours=1))

        result = await ExpiryJanitor(store_factory, TTL).run_once(now=fixed_datetime)

        assert result.examined == 1
        assert result.succeeded == 1
        assert result.failed == 0
        assert stale.id not in store.orders
        assert fresh.id in store.orders
        assert all(item.order_id != stale.id for item in store.items.values())
        assert any(item.order_id == fresh.id for item in store.items.values())

    async def test_keeps_paid_orders(self, store, seed, store_factory, fixed_datetime) -> None:
        reseller = seed.reseller()
        product = seed.product(reseller, stock="KEY1")
        order = seed.order([product], reseller, created_at=fixed_datetime - timedelta(days=3))
        order.status = OrderStatus.PAID

        result = await ExpiryJanitor(store_factory, TTL).run_once(now=fixed_datetime)

        assert result.examined == 0
        assert order.id in store.orders

    async def test_stock_untouched(self, store, seed, store_factory, fixed_datetime) -> None:
        reseller = seed.reseller()
        product = seed.product(reseller, stock="KEY1\nKEY2")
        seed.order([product], reseller, created_at=fixed_datetime - timedelta(hours=30))

        await ExpiryJanitor(store_factory, TTL).run_once(now=fixed_datetime)

        assert product.stock == "KEY1\nKEY2"

    async def test_one_failure_does_not_stop_sweep(
        self, store, seed, store_factory, fixed_datetime
    ) -> None:
        reseller = seed.reseller()
        product = seed.product(reseller, stock="KEY1")
        first = seed.order([product], reseller, created_at=fixed_datetime - timedelta(hours=48))
        second = seed.order([product], reseller, created_at=fixed_datetime - timedelta(hours=30))
        original_delete = store.delete_pending_order

        async def flaky_delete(order_id: int) -> bool:
            if order_id == first.id:
                raise RuntimeError("lock timeout")
            return await original_delete(order_id)

        with patch.object(store, "delete_pending_order", side_effect=flaky_delete):
            result = await ExpiryJanitor(store_factory, TTL).run_once(now=fixed_datetime)

        assert result.examined == 2
        assert result.succeeded == 1
        assert result.failed == 1
        assert first.id in store.orders
        assert second.id not in store.orders

    async def test_order_paid_meanwhile_survives(
        self, store, seed, store_factory, fixed_datetime
    ) -> None:
        """The delete only removes orders still pending."""
        reseller = seed.reseller()
        product = seed.product(reseller, stock="KEY1")
        order = seed.order([product], reseller, created_at=fixed_datetime - timedelta(hours=25))
        original_list = store.list_expired_pending_order_ids

        async def list_then_pay(cutoff):
            ids = await original_list(cutoff)
            order.status = OrderStatus.PAID
            return ids

        with patch.object(store, "list_expired_pending_order_ids", side_effect=list_then_pay):
            result = await ExpiryJanitor(store_factory, TTL).run_once(now=fixed_datetime)

        assert result.examined == 1
        assert result.succeeded == 0
        assert result.failed == 0
        assert order.id in store.orders

    async def test_nothing_to_do(self, store_factory, fixed_datetime) -> None:
        result = await ExpiryJanitor(store_factory, TTL).run_once(now=fixed_datetime)

        assert (result.examined, result.succeeded, result.failed) == (0, 0, 0)
