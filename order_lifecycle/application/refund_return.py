import logging

from order_lifecycle.application.common import (
    Clock,
    ensure_actor,
    load_order,
    load_return,
    require,
    utcnow,
)
from order_lifecycle.application.interfaces import PaymentsService
from order_lifecycle.domain.exceptions import InvalidTransitionError, ValidationError
from order_lifecycle.domain.models import OrderStatus
from order_lifecycle.domain.returns import ReturnRequest, ReturnStatus

logger = logging.getLogger(__name__)


class RefundReturnUseCase:
    """Возврат денег по полученному возврату.

    Все проверки выполняются до вызова платежного сервиса. Возврат и заказ
    переходят в REFUNDED только после подтверждения, одним коммитом.
    """

    def __init__(self, unit_of_work, payments_service: PaymentsService, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._payments = payments_service
        self._clock = clock

    async def __call__(self, return_id: str, creator_id: str) -> ReturnRequest:
        return_id = require(return_id, "Return ID")
        creator_id = require(creator_id, "Creator ID")

        async with self._uow() as uow:
            return_request = await load_return(uow, return_id)
            ensure_actor(creator_id, return_request.creator_id, "Вы не авторизованы возмещать этот возврат")
            if return_request.status != ReturnStatus.RECEIVED:
                raise InvalidTransitionError(
                    "refund_return",
                    return_request.status,
                    f"Возместить можно только полученные возвраты (status: {return_request.status.value})",
                )

            order = await load_order(uow, return_request.order_id, for_update=True)
            if order.status != OrderStatus.RETURN_RECEIVED:
                raise InvalidTransitionError("refund_return", order.status)
            if not order.payment_reference:
                raise ValidationError(f"У заказа {order.id} нет ссылки на платеж")

            try:
                confirmation = await self._payments.refund(
                    payment_reference=order.payment_reference,
                    amount=order.total_amount,
                    idempotency_key=f"return_refund_{return_request.id}",
                )
            except Exception:
                logger.error(f"Платежный сервис не выполнил возврат {return_id}, состояние не изменено")
                raise

            now = self._clock()
            return_request.mark_as_refunded(confirmation.id, now)
            order.refund_return(confirmation.id, now)

            await uow.returns.save(return_request)
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Возврат {return_id} возмещен (refund {confirmation.id}), заказ {order.id} отмечен REFUNDED")
        return return_request
