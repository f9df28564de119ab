import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from order_lifecycle.application.cancel_order import CancelOrderUseCase
from order_lifecycle.application.common import utcnow
from order_lifecycle.application.complete_orders import CompleteOrderUseCase
from order_lifecycle.application.create_order import CreateOrderDTO, CreateOrderUseCase
from order_lifecycle.application.create_return import CreateReturnDTO, CreateReturnUseCase
from order_lifecycle.application.get_order import GetOrderEscrowUseCase, GetOrderUseCase, ListOrdersUseCase
from order_lifecycle.application.get_return import GetReturnUseCase, ListReturnsUseCase
from order_lifecycle.application.interfaces import PaymentsService
from order_lifecycle.application.manage_dispute import (
    CloseDisputeUseCase,
    OpenDisputeDTO,
    OpenDisputeUseCase,
    ResolveDisputeUseCase,
    StartDisputeReviewUseCase,
)
from order_lifecycle.application.process_payment import PaymentCallbackDTO, ProcessPaymentCallbackUseCase
from order_lifecycle.application.refund_order import RefundOrderUseCase
from order_lifecycle.application.refund_return import RefundReturnUseCase
from order_lifecycle.application.return_shipping import ReceiveReturnUseCase, ShipBackReturnUseCase
from order_lifecycle.application.review_return import ApproveReturnUseCase, RejectReturnUseCase
from order_lifecycle.application.ship_order import ConfirmDeliveryUseCase, ShipOrderUseCase
from order_lifecycle.config import settings
from order_lifecycle.database import AsyncSessionLocal
from order_lifecycle.domain.exceptions import (
    DomainException,
    InvalidStatusError,
    InvalidTransitionError,
    NotFoundError,
    PaymentServiceError,
    UnauthorizedError,
    ValidationError,
)
from order_lifecycle.infrastructure.http_clients import HTTPPaymentsClient
from order_lifecycle.infrastructure.unit_of_work import UnitOfWork
from order_lifecycle.presentation.schemas import (
    CancelOrderRequest,
    CloseDisputeRequest,
    CreateOrderRequest,
    CreateReturnRequest,
    DisputeResponse,
    ErrorResponse,
    EscrowResponse,
    OpenDisputeRequest,
    OrderResponse,
    PaymentCallbackRequest,
    RefundOrderRequest,
    RejectReturnRequest,
    ResolveDisputeRequest,
    ReturnResponse,
    ShipBackReturnRequest,
    ShipOrderRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# Зависимости, подменяемые в тестах
def get_unit_of_work():
    return UnitOfWork(AsyncSessionLocal)


def get_payments_service() -> PaymentsService:
    return HTTPPaymentsClient(settings.PAYMENTS_BASE_URL, settings.API_TOKEN, settings.PAYMENTS_TIMEOUT)


def get_clock():
    return utcnow


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Идентификатор вызывающего, установленный upstream (gateway)"""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Не указан X-User-Id")
    return x_user_id


def to_http_error(error: DomainException) -> HTTPException:
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, UnauthorizedError):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, PaymentServiceError):
        return HTTPException(status_code=502, detail=str(error))
    if isinstance(error, (ValidationError, InvalidStatusError)):
        return HTTPException(status_code=400, detail=str(error))
    logger.error(f"Необработанная доменная ошибка: {error}")
    return HTTPException(status_code=500, detail=str(error))


# Фабрики для создания use cases
def get_create_order_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return CreateOrderUseCase(uow, clock)


def get_get_order_use_case(uow=Depends(get_unit_of_work)):
    return GetOrderUseCase(uow)


def get_list_orders_use_case(uow=Depends(get_unit_of_work)):
    return ListOrdersUseCase(uow)


def get_escrow_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return GetOrderEscrowUseCase(uow, settings.ESCROW_RELEASE_DELAY, clock)


def get_process_payment_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return ProcessPaymentCallbackUseCase(uow, clock)


def get_ship_order_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return ShipOrderUseCase(uow, clock)


def get_confirm_delivery_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return ConfirmDeliveryUseCase(uow, clock)


def get_cancel_order_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return CancelOrderUseCase(uow, clock)


def get_refund_order_use_case(
    uow=Depends(get_unit_of_work),
    payments: PaymentsService = Depends(get_payments_service),
    clock=Depends(get_clock),
):
    return RefundOrderUseCase(uow, payments, clock)


def get_complete_order_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return CompleteOrderUseCase(uow, settings.ESCROW_RELEASE_DELAY, clock)


def get_create_return_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return CreateReturnUseCase(uow, settings.RETURN_WINDOW_DAYS, clock)


def get_get_return_use_case(uow=Depends(get_unit_of_work)):
    return GetReturnUseCase(uow)


def get_list_returns_use_case(uow=Depends(get_unit_of_work)):
    return ListReturnsUseCase(uow)


def get_approve_return_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return ApproveReturnUseCase(uow, clock)


def get_reject_return_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return RejectReturnUseCase(uow, clock)


def get_ship_back_return_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return ShipBackReturnUseCase(uow, clock)


def get_receive_return_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return ReceiveReturnUseCase(uow, clock)


def get_refund_return_use_case(
    uow=Depends(get_unit_of_work),
    payments: PaymentsService = Depends(get_payments_service),
    clock=Depends(get_clock),
):
    return RefundReturnUseCase(uow, payments, clock)


def get_open_dispute_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return OpenDisputeUseCase(uow, clock)


def get_start_review_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return StartDisputeReviewUseCase(uow, clock)


def get_resolve_dispute_use_case(
    uow=Depends(get_unit_of_work),
    payments: PaymentsService = Depends(get_payments_service),
    clock=Depends(get_clock),
):
    return ResolveDisputeUseCase(uow, payments, clock)


def get_close_dispute_use_case(uow=Depends(get_unit_of_work), clock=Depends(get_clock)):
    return CloseDisputeUseCase(uow, clock)


# Заказы

@router.post(
    "/orders",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CreateOrderRequest,
    use_case: CreateOrderUseCase = Depends(get_create_order_use_case)
):
    """Создать новый заказ в статусе PENDING"""
    try:
        order = await use_case(CreateOrderDTO(**request.model_dump()))
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e) from e


@router.get("/orders", response_model=list[OrderResponse], responses={400: {"model": ErrorResponse}})
async def list_orders(
    creator_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    status_filter: Optional[list[str]] = Query(default=None, alias="status"),
    limit: int = 50,
    offset: int = 0,
    use_case: ListOrdersUseCase = Depends(get_list_orders_use_case)
):
    """Список заказов создателя или покупателя"""
    try:
        orders = await use_case(creator_id, customer_id, status_filter, limit, offset)
        return [OrderResponse.from_domain(order) for order in orders]
    except DomainException as e:
        raise to_http_error(e) from e


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}}
)
async def get_order(
    order_id: str,
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    """Получить заказ по ID"""
    try:
        order = await use_case(order_id)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e) from e


@router.get(
    "/orders/{order_id}/escrow",
    response_model=EscrowResponse,
    responses={404: {"model": ErrorResponse}}
)
async def get_order_escrow(
    order_id: str,
    use_case: GetOrderEscrowUseCase = Depends(get_escrow_use_case)
):
    """Состояние escrow: считается на лету от delivered_at"""
    try:
        view = await use_case(order_id)
        return EscrowResponse(order_id=order_id, **view.model_dump())
    except DomainException as e:
        raise to_http_error(e) from e


@router.post("/orders/payment-callback", responses=ERROR_RESPONSES)
async def payment_callback(
    callback: PaymentCallbackRequest,
    use_case: ProcessPaymentCallbackUseCase = Depends(get_process_payment_use_case)
):
    """Обработка callback от Payments Service"""
    try:
        order = await use_case(PaymentCallbackDTO(**callback.model_dump()))
        return {"status": "ok", "order_status": order.status.value}
    except DomainException as e:
        raise to_http_error(e) from e


@router.post("/orders/{order_id}/ship", response_model=OrderResponse, responses=ERROR_RESPONSES)
async def ship_order(
    order_id: str,
    request: ShipOrderRequest,
    user_id: str = Depends(get_current_user_id),
    use_case: ShipOrderUseCase = Depends(get_ship_order_use_case)
):
    try:
        order = await use_case(order_id, request.tracking_number, request.carrier, creator_id=user_id)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post("/orders/{order_id}/deliver", response_model=OrderResponse, responses=ERROR_RESPONSES)
async def confirm_delivery(
    order_id: str,
    use_case: ConfirmDeliveryUseCase = Depends(get_confirm_delivery_use_case)
):
    """Подтверждение доставки от перевозчика"""
    try:
        order = await use_case(order_id)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse, responses=ERROR_RESPONSES)
async def cancel_order(
    order_id: str,
    request: CancelOrderRequest,
    user_id: str = Depends(get_current_user_id),
    use_case: CancelOrderUseCase = Depends(get_cancel_order_use_case)
):
    try:
        order = await use_case(order_id, request.reason, actor_id=user_id)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post(
    "/orders/{order_id}/refund",
    response_model=OrderResponse,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse}}
)
async def refund_order(
    order_id: str,
    request: Optional[RefundOrderRequest] = None,
    user_id: str = Depends(get_current_user_id),
    use_case: RefundOrderUseCase = Depends(get_refund_order_use_case)
):
    """Полный возврат оплаченного заказа до отправки"""
    try:
        reason = request.reason if request else None
        order = await use_case(order_id, creator_id=user_id, reason=reason)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post("/orders/{order_id}/complete", response_model=OrderResponse, responses=ERROR_RESPONSES)
async def complete_order(
    order_id: str,
    use_case: CompleteOrderUseCase = Depends(get_complete_order_use_case)
):
    try:
        order = await use_case(order_id)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e) from e


# Возвраты

@router.post(
    "/returns",
    response_model=ReturnResponse,
    responses=ERROR_RESPONSES,
    status_code=status.HTTP_201_CREATED
)
async def create_return(
    request: CreateReturnRequest,
    user_id: str = Depends(get_current_user_id),
    use_case: CreateReturnUseCase = Depends(get_create_return_use_case)
):
    """Заявка покупателя на возврат"""
    try:
        dto = CreateReturnDTO(
            order_id=request.order_id,
            customer_id=user_id,
            reason=request.reason.value,
            reason_details=request.reason_details
        )
        return_request = await use_case(dto)
        return ReturnResponse.from_domain(return_request)
    except DomainException as e:
        raise to_http_error(e) from e


@router.get("/returns", response_model=list[ReturnResponse], responses={400: {"model": ErrorResponse}})
async def list_returns(
    creator_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    use_case: ListReturnsUseCase = Depends(get_list_returns_use_case)
):
    try:
        returns = await use_case(creator_id, customer_id, limit, offset)
        return [ReturnResponse.from_domain(r) for r in returns]
    except DomainException as e:
        raise to_http_error(e) from e


@router.get("/returns/{return_id}", response_model=ReturnResponse, responses=ERROR_RESPONSES)
async def get_return(
    return_id: str,
    user_id: str = Depends(get_current_user_id),
    use_case: GetReturnUseCase = Depends(get_get_return_use_case)
):
    try:
        return_request = await use_case(return_id, actor_id=user_id)
        return ReturnResponse.from_domain(return_request)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post("/returns/{return_id}/approve", response_model=ReturnResponse, responses=ERROR_RESPONSES)
async def approve_return(
    return_id: str,
    user_id: str = Depends(get_current_user_id),
    use_case: ApproveReturnUseCase = Depends(get_approve_return_use_case)
):
    try:
        return_request = await use_case(return_id, creator_id=user_id)
        return ReturnResponse.from_domain(return_request)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post("/returns/{return_id}/reject", response_model=ReturnResponse, responses=ERROR_RESPONSES)
async def reject_return(
    return_id: str,
    request: RejectReturnRequest,
    user_id: str = Depends(get_current_user_id),
    use_case: RejectReturnUseCase = Depends(get_reject_return_use_case)
):
    try:
        return_request = await use_case(return_id, creator_id=user_id, reason=request.reason)
        return ReturnResponse.from_domain(return_request)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post("/returns/{return_id}/ship-back", response_model=ReturnResponse, responses=ERROR_RESPONSES)
async def ship_back_return(
    return_id: str,
    request: ShipBackReturnRequest,
    user_id: str = Depends(get_current_user_id),
    use_case: ShipBackReturnUseCase = Depends(get_ship_back_return_use_case)
):
    """Покупатель отправил товар обратно"""
    try:
        return_request = await use_case(
            return_id, customer_id=user_id, tracking_number=request.tracking_number, carrier=request.carrier
        )
        return ReturnResponse.from_domain(return_request)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post("/returns/{return_id}/receive", response_model=ReturnResponse, responses=ERROR_RESPONSES)
async def receive_return(
    return_id: str,
    user_id: str = Depends(get_current_user_id),
    use_case: ReceiveReturnUseCase = Depends(get_receive_return_use_case)
):
    try:
        return_request = await use_case(return_id, creator_id=user_id)
        return ReturnResponse.from_domain(return_request)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post(
    "/returns/{return_id}/refund",
    response_model=ReturnResponse,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse}}
)
async def refund_return(
    return_id: str,
    user_id: str = Depends(get_current_user_id),
    use_case: RefundReturnUseCase = Depends(get_refund_return_use_case)
):
    try:
        return_request = await use_case(return_id, creator_id=user_id)
        return ReturnResponse.from_domain(return_request)
    except DomainException as e:
        raise to_http_error(e) from e


# Споры

@router.post(
    "/disputes",
    response_model=DisputeResponse,
    responses=ERROR_RESPONSES,
    status_code=status.HTTP_201_CREATED
)
async def open_dispute(
    request: OpenDisputeRequest,
    user_id: str = Depends(get_current_user_id),
    use_case: OpenDisputeUseCase = Depends(get_open_dispute_use_case)
):
    try:
        dto = OpenDisputeDTO(
            order_id=request.order_id,
            customer_id=user_id,
            type=request.type.value,
            description=request.description
        )
        dispute = await use_case(dto)
        return DisputeResponse.from_domain(dispute)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post("/disputes/{dispute_id}/review", response_model=DisputeResponse, responses=ERROR_RESPONSES)
async def start_dispute_review(
    dispute_id: str,
    use_case: StartDisputeReviewUseCase = Depends(get_start_review_use_case)
):
    try:
        dispute = await use_case(dispute_id)
        return DisputeResponse.from_domain(dispute)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post(
    "/disputes/{dispute_id}/resolve",
    response_model=DisputeResponse,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse}}
)
async def resolve_dispute(
    dispute_id: str,
    request: ResolveDisputeRequest,
    use_case: ResolveDisputeUseCase = Depends(get_resolve_dispute_use_case)
):
    try:
        dispute = await use_case(dispute_id, request.resolution, refund=request.refund)
        return DisputeResponse.from_domain(dispute)
    except DomainException as e:
        raise to_http_error(e) from e


@router.post("/disputes/{dispute_id}/close", response_model=DisputeResponse, responses=ERROR_RESPONSES)
async def close_dispute(
    dispute_id: str,
    request: CloseDisputeRequest,
    use_case: CloseDisputeUseCase = Depends(get_close_dispute_use_case)
):
    try:
        dispute = await use_case(dispute_id, request.reason)
        return DisputeResponse.from_domain(dispute)
    except DomainException as e:
        raise to_http_error(e) from e
