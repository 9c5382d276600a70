"""
Catalog Service - Reseller-owned products, order history and webhook endpoints.

Every read and write is scoped to the calling reseller; rows owned by another
reseller are reported as not found.
"""

import secrets
from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.models import Order, OrderItem, Product, Reseller, ResellerWebhook
from marketplace.exceptions import OrderNotFoundError, ProductNotFoundError
from marketplace.models.api import ProductCreateRequest, ProductUpdateRequest
from marketplace.observability import get_logger
from marketplace.services.stock_allocator import count_stock, normalize_stock

logger = get_logger(__name__)


class CatalogService:
    """Vendor catalog operations."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def list_products(self, reseller_id: int) -> list[Product]:
        stmt = select(Product).where(Product.reseller_id == reseller_id).order_by(Product.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_product(self, reseller_id: int, request: ProductCreateRequest) -> Product:
        """Create a product; stock lines are trimmed and blank lines dropped."""
        product = Product(
            reseller_id=reseller_id,
            name=request.name,
            description=request.description,
            price_minor=request.price_minor,
            stock=normalize_stock(request.stock),
            active=True,
        )
        self.db.add(product)
        await self.db.commit()

        logger.info(
            "product_created",
            product_id=product.id,
            reseller_id=reseller_id,
            stock_count=count_stock(product.stock),
        )
        return product

    async def update_product(
        self, reseller_id: int, product_id: int, request: ProductUpdateRequest
    ) -> Product:
        """
        Update a product under its row lock.

        A stock value replaces the whole stock text, so it serializes with
        any fulfillment currently consuming lines.

        Raises:
            ProductNotFoundError: Product doesn't exist or belongs to another reseller
        """
        stmt = (
            select(Product)
            .where(Product.id == product_id, Product.reseller_id == reseller_id)
            .with_for_update()
        )
        result = await self.db.execute(stmt)
        product = result.scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(product_id)

        if request.name is not None:
            product.name = request.name
        if request.description is not None:
            product.description = request.description
        if request.price_minor is not None:
            product.price_minor = request.price_minor
        if request.active is not None:
            product.active = request.active
        if request.stock is not None:
            product.stock = normalize_stock(request.stock)
        await self.db.commit()

        logger.info(
            "product_updated",
            product_id=product.id,
            reseller_id=reseller_id,
            stock_replaced=request.stock is not None,
            stock_count=count_stock(product.stock),
        )
        return product

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def list_orders(
        self, reseller_id: int, limit: int = 100
    ) -> list[tuple[Order, list[str]]]:
        """Most recent orders of a reseller with their product names."""
        stmt = (
            select(Order)
            .where(Order.reseller_id == reseller_id)
            .order_by(Order.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        orders = list(result.scalars().all())
        if not orders:
            return []

        item_stmt = (
            select(OrderItem.order_id, OrderItem.product_name)
            .where(OrderItem.order_id.in_([order.id for order in orders]))
            .order_by(OrderItem.id)
        )
        item_result = await self.db.execute(item_stmt)
        names: dict[int, list[str]] = defaultdict(list)
        for order_id, product_name in item_result.all():
            names[order_id].append(product_name)

        return [(order, names[order.id]) for order in orders]

    async def ensure_order_owner(self, reseller_id: int, order_id: int) -> None:
        """
        Check that an order was sold by the reseller.

        Raises:
            OrderNotFoundError: Order doesn't exist or belongs to another reseller
        """
        stmt = select(Order.reseller_id).where(Order.id == order_id)
        result = await self.db.execute(stmt)
        owner = result.scalar_one_or_none()
        if owner is None or owner != reseller_id:
            raise OrderNotFoundError(order_id)

    # ------------------------------------------------------------------
    # Purchase webhook endpoints
    # ------------------------------------------------------------------

    async def list_webhooks(self, reseller_id: int) -> list[ResellerWebhook]:
        stmt = (
            select(ResellerWebhook)
            .where(ResellerWebhook.reseller_id == reseller_id)
            .order_by(ResellerWebhook.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_webhook(self, reseller_id: int, name: str, url: str) -> ResellerWebhook:
        """Register an endpoint with a fresh signing secret."""
        webhook = ResellerWebhook(
            reseller_id=reseller_id,
            name=name,
            url=url,
            secret=f"whsec_{secrets.token_hex(24)}",
            active=True,
        )
        self.db.add(webhook)
        await self.db.commit()

        logger.info("reseller_webhook_created", webhook_id=webhook.id, reseller_id=reseller_id)
        return webhook

    async def delete_webhook(self, reseller_id: int, webhook_id: int) -> bool:
        """Delete an endpoint. Returns False when it isn't the reseller's."""
        stmt = select(ResellerWebhook).where(
            ResellerWebhook.id == webhook_id, ResellerWebhook.reseller_id == reseller_id
        )
        result = await self.db.execute(stmt)
        webhook = result.scalar_one_or_none()
        if webhook is None:
            return False

        await self.db.delete(webhook)
        await self.db.commit()
        logger.info("reseller_webhook_deleted", webhook_id=webhook_id, reseller_id=reseller_id)
        return True

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def list_resellers(self) -> list[Reseller]:
        stmt = select(Reseller).order_by(Reseller.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
