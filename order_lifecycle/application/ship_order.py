import logging

from order_lifecycle.application.common import Clock, ensure_actor, load_order, require, utcnow
from order_lifecycle.domain.exceptions import InvalidTransitionError
from order_lifecycle.domain.models import Order

logger = logging.getLogger(__name__)


class ShipOrderUseCase:
    def __init__(self, unit_of_work, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(
        self, order_id: str, tracking_number: str, carrier: str, creator_id: str | None = None
    ) -> Order:
        order_id = require(order_id, "Order ID")
        tracking_number = require(tracking_number, "Трек-номер")
        carrier = require(carrier, "Перевозчик")

        async with self._uow() as uow:
            order = await load_order(uow, order_id)
            ensure_actor(creator_id, order.creator_id, "Заказ принадлежит другому создателю")
            if not order.can_be_shipped():
                logger.warning(f"Заказ {order_id} не может быть отправлен (status: {order.status.value})")
                raise InvalidTransitionError("ship", order.status)

            order.ship(tracking_number, carrier, self._clock())
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Заказ {order_id} отмечен SHIPPED ({carrier} {tracking_number})")
        return order


class ConfirmDeliveryUseCase:
    def __init__(self, unit_of_work, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(self, order_id: str) -> Order:
        order_id = require(order_id, "Order ID")

        async with self._uow() as uow:
            order = await load_order(uow, order_id)
            order.mark_as_delivered(self._clock())
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Заказ {order_id} отмечен DELIVERED, отсчет escrow начат")
        return order
