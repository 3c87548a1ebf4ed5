"""
结账 API 路由
"""
from fastapi import APIRouter, BackgroundTasks, Depends

from sf_core.services import CardDetails, CheckoutItem, CheckoutService, OutboxDispatcher, Principal
from sf_core.utils.errors import StorefrontException, InternalServerError
from sf_core.utils.logger import get_logger
from .deps import get_checkout_service, get_current_principal, get_outbox_dispatcher
from .models import ApiResponse, CheckoutRequest

router = APIRouter()
logger = get_logger(__name__)


@router.post("/process", response_model=ApiResponse)
async def process_payment(
    body: CheckoutRequest,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    checkout_service: CheckoutService = Depends(get_checkout_service),
    dispatcher: OutboxDispatcher = Depends(get_outbox_dispatcher),
):
    """支付并下单"""
    try:
        result = await checkout_service.place_order(
            principal,
            items=[CheckoutItem(product_id=i.product_id, quantity=i.quantity) for i in body.items],
            card=CardDetails(
                number=body.card_number,
                holder=body.card_name,
                expiration_month=body.expiration_month,
                expiration_year=body.expiration_year,
                cvv=body.cvv,
            ),
            shipping_address=body.shipping_address,
        )
        background_tasks.add_task(dispatcher.dispatch_in_background)
        return ApiResponse.ok(
            result.data,
            message="Payment processed successfully",
            metadata={"order_id": result.data["id"]},
        )
    except StorefrontException:
        raise
    except Exception as e:
        logger.error("Checkout failed", user_id=principal.id, exc_info=True)
        raise InternalServerError(code="API_ERROR", detail=str(e))
