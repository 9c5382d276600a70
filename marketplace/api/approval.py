"""
Manual approval shared by the vendor and admin routers.
"""

from fastapi import HTTPException, status

from marketplace.exceptions import DataIntegrityError, OrderNotFoundError, OutOfStockError
from marketplace.models.api import FulfillmentResponse, FulfillmentSource
from marketplace.services.notifications import NotificationDispatcher
from marketplace.services.payment_provider import PaymentGateway
from marketplace.services.reconciler import PaymentReconciler
from marketplace.services.stores import MarketplaceStore


async def approve_order(
    order_id: int,
    source: FulfillmentSource,
    store: MarketplaceStore,
    gateway: PaymentGateway | None,
    dispatcher: NotificationDispatcher,
) -> FulfillmentResponse:
    """Run a manual approval and translate domain errors to HTTP errors."""
    reconciler = PaymentReconciler(store, gateway, dispatcher)
    try:
        result = await reconciler.approve(order_id, source)
    except OrderNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except OutOfStockError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except DataIntegrityError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Data integrity error: {exc.message}",
        ) from exc

    return FulfillmentResponse(
        order_id=result.order_id,
        status=result.status,
        delivered_content=result.delivered_content,
        already_paid=result.replayed,
    )
