"""
Tests for CatalogService.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from marketplace.db.models import Order, Product, ResellerWebhook
from marketplace.exceptions import OrderNotFoundError, ProductNotFoundError
from marketplace.models.api import ProductCreateRequest, ProductUpdateRequest
from marketplace.services.catalog import CatalogService


class TestProducts:
    """Tests for product management."""

    async def test_create_normalizes_stock(self, db_session: AsyncMock) -> None:
        product = await CatalogService(db_session).create_product(
            7,
            ProductCreateRequest(name="Netflix", price_minor=2990, stock="\n KEY1 \r\n\nKEY2\n"),
        )

        assert product.stock == " KEY1 \nKEY2"
        assert product.reseller_id == 7
        assert product.active is True
        db_session.add.assert_called_once_with(product)
        db_session.commit.assert_awaited_once()

    async def test_update_replaces_stock(self, db_session: AsyncMock, result_factory) -> None:
        product = MagicMock(spec=Product)
        product.id = 3
        product.name = "Netflix"
        product.stock = "OLD1\nOLD2"
        db_session.execute = AsyncMock(return_value=result_factory(scalar=product))

        updated = await CatalogService(db_session).update_product(
            7, 3, ProductUpdateRequest(stock="NEW1\n\nNEW2", price_minor=1500)
        )

        assert updated.stock == "NEW1\nNEW2"
        assert updated.price_minor == 1500
        assert updated.name == "Netflix"
        stmt = db_session.execute.await_args.args[0]
        assert stmt._for_update_arg is not None

    async def test_update_other_resellers_product(self, db_session: AsyncMock) -> None:
        with pytest.raises(ProductNotFoundError):
            await CatalogService(db_session).update_product(
                7, 3, ProductUpdateRequest(name="Hijack")
            )

        db_session.commit.assert_not_awaited()


class TestOrders:
    """Tests for order history and ownership."""

    async def test_list_orders_with_names(self, db_session: AsyncMock, result_factory) -> None:
        first = MagicMock(spec=Order)
        first.id = 1
        second = MagicMock(spec=Order)
        second.id = 2
        db_session.execute = AsyncMock(
            side_effect=[
                result_factory(scalars=[second, first]),
                result_factory(rows=[(1, "Netflix"), (1, "Spotify"), (2, "Disney+")]),
            ]
        )

        rows = await CatalogService(db_session).list_orders(7)

        assert rows == [(second, ["Disney+"]), (first, ["Netflix", "Spotify"])]

    async def test_list_orders_empty(self, db_session: AsyncMock) -> None:
        assert await CatalogService(db_session).list_orders(7) == []
        assert db_session.execute.await_count == 1

    async def test_ensure_owner(self, db_session: AsyncMock, result_factory) -> None:
        db_session.execute = AsyncMock(return_value=result_factory(scalar=7))

        await CatalogService(db_session).ensure_order_owner(7, 42)

    async def test_ensure_owner_other_reseller(
        self, db_session: AsyncMock, result_factory
    ) -> None:
        db_session.execute = AsyncMock(return_value=result_factory(scalar=8))

        with pytest.raises(OrderNotFoundError):
            await CatalogService(db_session).ensure_order_owner(7, 42)

    async def test_ensure_owner_missing(self, db_session: AsyncMock) -> None:
        with pytest.raises(OrderNotFoundError):
            await CatalogService(db_session).ensure_order_owner(7, 42)


class TestWebhooks:
    """Tests for purchase webhook endpoints."""

    async def test_create_generates_secret(self, db_session: AsyncMock) -> None:
        webhook = await CatalogService(db_session).create_webhook(
            7, "ERP", "https://erp.example.com/hook"
        )

        assert webhook.secret.startswith("whsec_")
        assert len(webhook.secret) == len("whsec_") + 48
        assert webhook.active is True

    async def test_delete_own(self, db_session: AsyncMock, result_factory) -> None:
        webhook = MagicMock(spec=ResellerWebhook)
        db_session.execute = AsyncMock(return_value=result_factory(scalar=webhook))

        assert await CatalogService(db_session).delete_webhook(7, 1) is True
        db_session.delete.assert_awaited_once_with(webhook)

    async def test_delete_missing(self, db_session: AsyncMock) -> None:
        assert await CatalogService(db_session).delete_webhook(7, 1) is False
        db_session.delete.assert_not_awaited()
