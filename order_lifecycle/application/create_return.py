import logging
from pydantic import BaseModel

from order_lifecycle.application.common import Clock, load_order, require, utcnow
from order_lifecycle.domain.exceptions import (
    ActiveReturnExistsError,
    InvalidTransitionError,
    ReturnWindowExpiredError,
    UnauthorizedError,
)
from order_lifecycle.domain.returns import (
    RETURN_WINDOW_DAYS,
    ReturnReason,
    ReturnRequest,
    can_request_return,
    days_since_delivery,
)

logger = logging.getLogger(__name__)


class CreateReturnDTO(BaseModel):
    order_id: str
    customer_id: str
    reason: str
    reason_details: str | None = None


class CreateReturnUseCase:
    """Заявка покупателя на возврат доставленного заказа.

    Заявка создается в REQUESTED, заказ переходит в VALIDATION_PENDING;
    обе записи фиксируются одним коммитом.
    """

    def __init__(self, unit_of_work, return_window_days: int = RETURN_WINDOW_DAYS, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._window_days = return_window_days
        self._clock = clock

    async def __call__(self, dto: CreateReturnDTO) -> ReturnRequest:
        order_id = require(dto.order_id, "Order ID")
        customer_id = require(dto.customer_id, "Customer ID")
        reason = ReturnReason.parse(require(dto.reason, "Причина возврата"))

        logger.info(f"Заявка на возврат по заказу {order_id} от покупателя {customer_id}")

        async with self._uow() as uow:
            order = await load_order(uow, order_id)
            if order.customer_id != customer_id:
                raise UnauthorizedError("Заказ принадлежит другому покупателю")

            if await uow.returns.get_active_by_order_id(order_id):
                logger.warning(f"По заказу {order_id} уже есть активный возврат")
                raise ActiveReturnExistsError(order_id, order.status)

            if not order.status.can_request_return() or order.delivered_at is None:
                raise InvalidTransitionError("create_return", order.status)

            now = self._clock()
            if not can_request_return(order.delivered_at, now, self._window_days):
                raise ReturnWindowExpiredError(
                    days_since_delivery(order.delivered_at, now), self._window_days, order.status
                )

            previous_status = order.request_return(now)
            return_request = ReturnRequest.create(
                order_id=order.id,
                customer_id=customer_id,
                creator_id=order.creator_id,
                reason=reason,
                reason_details=dto.reason_details,
                order_status_before=previous_status,
                now=now,
            )

            await uow.returns.create(return_request)
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Возврат {return_request.id} создан, заказ {order_id} отмечен VALIDATION_PENDING")
        return return_request
