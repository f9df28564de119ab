import logging
from pydantic import BaseModel
from typing import Optional

from order_lifecycle.application.common import Clock, utcnow
from order_lifecycle.domain.exceptions import (
    InvalidTransitionError,
    OrderNotFoundError,
    ValidationError,
)
from order_lifecycle.domain.models import Order, OrderStatus

logger = logging.getLogger(__name__)


class PaymentCallbackDTO(BaseModel):
    payment_id: str
    order_id: str
    status: str
    amount: int
    error_message: Optional[str] = None


class ProcessPaymentCallbackUseCase:
    def __init__(self, unit_of_work, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(self, dto: PaymentCallbackDTO) -> Order:
        logger.info(f"Обработка payment callback: {dto}")

        if dto.status not in ("succeeded", "failed"):
            raise ValidationError(f"Неизвестный статус платежа: {dto.status}")

        async with self._uow() as uow:
            order = await uow.orders.get_by_id(dto.order_id)
            if not order:
                raise OrderNotFoundError(f"Заказ {dto.order_id} не найден")

            # Идемпотентность
            if order.status == OrderStatus.PAID and dto.status == "succeeded":
                logger.info(f"Заказ {order.id} уже обработан")
                return order

            now = self._clock()
            if dto.status == "succeeded":
                if dto.amount != order.total_amount:
                    raise ValidationError(
                        f"Сумма платежа {dto.amount} не совпадает с суммой заказа {order.total_amount}"
                    )
                order.mark_as_paid(dto.payment_id, now)
                logger.info(f"Заказ {dto.order_id} отмечен PAID")
            else:
                if not order.can_be_paid():
                    raise InvalidTransitionError("payment_failed", order.status)
                error_msg = dto.error_message or "платеж не прошел"
                order.cancel(f"Платеж отклонен: {error_msg}", now)
                logger.info(f"Заказ {dto.order_id} отменен из-за неудачного платежа")

            await uow.orders.save(order)
            await uow.commit()

        return order
