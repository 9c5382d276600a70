"""
Checkout Service - Storefront order creation, status and email resend.

Orders are created pending with one unit per item and a server-side total.
When a gateway is configured a PIX billing is opened right after the order
is committed; a gateway failure leaves the unpaid order for the expiry sweep.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.db.models import Order, OrderItem, Product, Reseller
from marketplace.exceptions import (
    AuthorizationError,
    CheckoutError,
    OrderNotFoundError,
    OrderNotPaidError,
    OutOfStockError,
)
from marketplace.models.api import CheckoutRequest, OrderStatus
from marketplace.models.domain import NotificationResult
from marketplace.observability import get_logger
from marketplace.services.notifications import NotificationDispatcher
from marketplace.services.payment_provider import PaymentGateway, PixBillingRequest
from marketplace.services.stock_allocator import count_stock

logger = get_logger(__name__)


class CheckoutService:
    """Customer-facing order operations."""

    def __init__(self, db: AsyncSession, gateway: PaymentGateway | None = None) -> None:
        self.db = db
        self.gateway = gateway

    async def create_order(self, request: CheckoutRequest) -> Order:
        """
        Create a pending order and, if possible, its PIX billing.

        Raises:
            CheckoutError: Unknown product or items from different stores
            OutOfStockError: A product is inactive or has no stock
            PaymentProviderError: Billing creation failed (order stays pending)
        """
        product_ids = [item.product_id for item in request.items]
        products = await self._load_products(set(product_ids))

        for product_id in product_ids:
            product = products.get(product_id)
            if product is None:
                raise CheckoutError(f"Produto {product_id} não encontrado")
            if not product.active or count_stock(product.stock) == 0:
                raise OutOfStockError(product.id, product.name, count_stock(product.stock), 1)

        reseller_ids = {products[product_id].reseller_id for product_id in product_ids}
        if len(reseller_ids) != 1:
            raise CheckoutError("Todos os produtos devem ser da mesma loja")

        total_minor = sum(products[product_id].price_minor for product_id in product_ids)
        order = Order(
            reseller_id=reseller_ids.pop(),
            status=OrderStatus.PENDING,
            total_amount_minor=total_minor,
            email=request.email,
            whatsapp=request.whatsapp,
            customer_name=request.customer_name,
            payment_method="pix",
        )
        self.db.add(order)
        await self.db.flush()

        for product_id in product_ids:
            product = products[product_id]
            self.db.add(
                OrderItem(
                    order_id=order.id,
                    product_id=product.id,
                    product_name=product.name,
                    price_minor=product.price_minor,
                    quantity=1,
                )
            )
        await self.db.commit()

        logger.info(
            "order_created",
            order_id=order.id,
            reseller_id=order.reseller_id,
            items=len(product_ids),
            total_amount_minor=total_minor,
        )

        if self.gateway is None:
            logger.warning("order_created_without_gateway", order_id=order.id)
            return order

        names = ", ".join(products[product_id].name for product_id in dict.fromkeys(product_ids))
        billing = await self.gateway.create_pix_billing(
            PixBillingRequest(
                order_id=order.id,
                amount_minor=total_minor,
                description=f"Pedido #{order.id} - {names}"[:255],
                customer_email=order.email,
                customer_name=order.customer_name,
            )
        )
        order.billing_id = billing.billing_id
        order.pix_code = billing.pix_code
        order.pix_qr_code_url = billing.pix_qr_code_url
        order.checkout_url = billing.checkout_url
        await self.db.commit()
        return order

    async def get_order(self, order_id: int) -> Order:
        """
        Get an order for the status endpoint.

        Raises:
            OrderNotFoundError: Order doesn't exist
        """
        order = await self.db.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def resend_email(
        self, order_id: int, email: str, dispatcher: NotificationDispatcher
    ) -> NotificationResult:
        """
        Send the delivery email again to the address on the order.

        Raises:
            OrderNotFoundError: Order doesn't exist
            AuthorizationError: Email does not match the order
            OrderNotPaidError: Nothing has been delivered yet
        """
        order = await self.get_order(order_id)
        if order.email.strip().lower() != email.strip().lower():
            logger.warning("resend_email_mismatch", order_id=order_id)
            raise AuthorizationError("email does not match order")
        if order.status != OrderStatus.PAID or not order.delivered_content:
            raise OrderNotPaidError(order_id)

        stmt = select(OrderItem.product_name).where(OrderItem.order_id == order.id)
        result = await self.db.execute(stmt)
        product_names = tuple(result.scalars().all())

        store_name = await self._store_name(order)
        notification = await dispatcher.send(
            order.email, order.id, product_names, order.delivered_content, store_name
        )
        logger.info(
            "delivery_email_resent",
            order_id=order.id,
            success=notification.success,
            error=notification.error,
        )
        return notification

    async def _load_products(self, product_ids: set[int]) -> dict[int, Product]:
        stmt = select(Product).where(Product.id.in_(product_ids))
        result = await self.db.execute(stmt)
        return {product.id: product for product in result.scalars().all()}

    async def _store_name(self, order: Order) -> str:
        if order.reseller_id is not None:
            reseller = await self.db.get(Reseller, order.reseller_id)
            if reseller is not None:
                return reseller.store_name
        return settings.default_store_name
