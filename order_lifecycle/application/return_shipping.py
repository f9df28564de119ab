import logging

from order_lifecycle.application.common import (
    Clock,
    ensure_actor,
    load_order,
    load_return,
    require,
    utcnow,
)
from order_lifecycle.domain.returns import ReturnRequest

logger = logging.getLogger(__name__)


class ShipBackReturnUseCase:
    """Покупатель отправил товар обратно: возврат SHIPPED_BACK, заказ RETURN_SHIPPED"""

    def __init__(self, unit_of_work, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(self, return_id: str, customer_id: str, tracking_number: str, carrier: str) -> ReturnRequest:
        return_id = require(return_id, "Return ID")
        customer_id = require(customer_id, "Customer ID")
        tracking_number = require(tracking_number, "Трек-номер")
        carrier = require(carrier, "Перевозчик")

        async with self._uow() as uow:
            return_request = await load_return(uow, return_id)
            ensure_actor(customer_id, return_request.customer_id, "Вы не авторизованы отправлять этот возврат")

            now = self._clock()
            return_request.mark_as_shipped_back(tracking_number, carrier, now)
            order = await load_order(uow, return_request.order_id)
            order.mark_return_shipped(now)

            await uow.returns.save(return_request)
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Возврат {return_id} отправлен покупателем ({carrier} {tracking_number})")
        return return_request


class ReceiveReturnUseCase:
    """Создатель получил товар: возврат RECEIVED, заказ RETURN_RECEIVED"""

    def __init__(self, unit_of_work, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(self, return_id: str, creator_id: str) -> ReturnRequest:
        return_id = require(return_id, "Return ID")
        creator_id = require(creator_id, "Creator ID")

        async with self._uow() as uow:
            return_request = await load_return(uow, return_id)
            ensure_actor(creator_id, return_request.creator_id, "Вы не авторизованы обрабатывать этот возврат")

            now = self._clock()
            return_request.mark_as_received(now)
            order = await load_order(uow, return_request.order_id)
            order.mark_return_received(now)

            await uow.returns.save(return_request)
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Возврат {return_id} получен, заказ {order.id} отмечен RETURN_RECEIVED")
        return return_request
