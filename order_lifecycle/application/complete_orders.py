import logging
from datetime import timedelta

from order_lifecycle.application.common import Clock, load_order, require, utcnow
from order_lifecycle.domain.escrow import ESCROW_RELEASE_DELAY, calculate_escrow
from order_lifecycle.domain.exceptions import InvalidTransitionError
from order_lifecycle.domain.models import Order, OrderStatus
from order_lifecycle.domain.specifications import awaiting_completion

logger = logging.getLogger(__name__)


class CompleteOrderUseCase:
    """Завершение заказа после выплаты escrow. Повторный вызов ничего не меняет."""

    def __init__(self, unit_of_work, release_delay: timedelta = ESCROW_RELEASE_DELAY, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._release_delay = release_delay
        self._clock = clock

    async def __call__(self, order_id: str) -> Order:
        order_id = require(order_id, "Order ID")

        async with self._uow() as uow:
            order = await load_order(uow, order_id)
            if order.status == OrderStatus.COMPLETED:
                logger.info(f"Заказ {order_id} уже завершен")
                return order

            now = self._clock()
            if not order.status.can_be_completed():
                raise InvalidTransitionError("complete", order.status)

            escrow = calculate_escrow(order.delivered_at, now, self._release_delay)
            if not escrow.is_released:
                raise InvalidTransitionError(
                    "complete",
                    order.status,
                    f"Escrow по заказу {order_id} еще не выплачен (осталось {escrow.remaining_hours} ч)",
                )
            if await uow.returns.get_active_by_order_id(order_id):
                raise InvalidTransitionError(
                    "complete", order.status, f"По заказу {order_id} есть активная заявка на возврат"
                )
            if await uow.disputes.get_active_by_order_id(order_id):
                raise InvalidTransitionError("complete", order.status, f"По заказу {order_id} открыт спор")

            order.complete(now)
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Заказ {order_id} отмечен COMPLETED")
        return order


class CompleteDeliveredOrdersUseCase:
    """Периодическая задача: завершает заказы, у которых истек срок escrow.

    Каждый заказ завершается в отдельной транзакции; заказы, измененные
    параллельно или с активным возвратом/спором, пропускаются до следующего прогона.
    """

    def __init__(self, unit_of_work, release_delay: timedelta = ESCROW_RELEASE_DELAY, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._release_delay = release_delay
        self._clock = clock
        self._complete_one = CompleteOrderUseCase(unit_of_work, release_delay, clock)

    async def __call__(self, limit: int = 50) -> int:
        cutoff = self._clock() - self._release_delay
        async with self._uow() as uow:
            candidates = await uow.orders.find(awaiting_completion(cutoff), limit=limit)

        if not candidates:
            return 0

        logger.info(f"Найдено {len(candidates)} заказов для завершения")
        completed = 0
        for order in candidates:
            try:
                result = await self._complete_one(order.id)
            except InvalidTransitionError as e:
                logger.warning(f"Заказ {order.id} пропущен: {e}")
                continue
            if result.status == OrderStatus.COMPLETED:
                completed += 1

        return completed
