import logging

from order_lifecycle.application.common import Clock, load_order, require, utcnow
from order_lifecycle.domain.exceptions import InvalidTransitionError, UnauthorizedError
from order_lifecycle.domain.models import Order

logger = logging.getLogger(__name__)


class CancelOrderUseCase:
    def __init__(self, unit_of_work, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(self, order_id: str, reason: str, actor_id: str | None = None) -> Order:
        order_id = require(order_id, "Order ID")
        reason = require(reason, "Причина отмены")

        async with self._uow() as uow:
            order = await load_order(uow, order_id)
            # Отменить может покупатель или создатель
            if actor_id is not None and actor_id not in (order.customer_id, order.creator_id):
                raise UnauthorizedError("Нет прав на отмену этого заказа")
            if not order.can_be_cancelled():
                logger.warning(f"Заказ {order_id} не может быть отменен (status: {order.status.value})")
                raise InvalidTransitionError("cancel", order.status)

            order.cancel(reason, self._clock())
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Заказ {order_id} отмечен CANCELED. Причина: {reason}")
        return order
