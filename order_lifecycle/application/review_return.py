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


class ApproveReturnUseCase:
    """Создатель одобряет заявку. Заказ при этом не меняется."""

    def __init__(self, unit_of_work, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(self, return_id: str, creator_id: str) -> ReturnRequest:
        return_id = require(return_id, "Return ID")
        creator_id = require(creator_id, "Creator ID")

        async with self._uow() as uow:
            return_request = await load_return(uow, return_id)
            ensure_actor(creator_id, return_request.creator_id, "Вы не авторизованы обрабатывать этот возврат")

            return_request.approve(self._clock())
            await uow.returns.save(return_request)
            await uow.commit()

        logger.info(f"Возврат {return_id} одобрен")
        return return_request


class RejectReturnUseCase:
    """Отклонение заявки: заказ возвращается в статус, из которого был запрошен возврат."""

    def __init__(self, unit_of_work, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(self, return_id: str, creator_id: str, reason: str) -> ReturnRequest:
        return_id = require(return_id, "Return ID")
        creator_id = require(creator_id, "Creator ID")
        reason = require(reason, "Причина отклонения")

        async with self._uow() as uow:
            return_request = await load_return(uow, return_id)
            ensure_actor(creator_id, return_request.creator_id, "Вы не авторизованы обрабатывать этот возврат")

            now = self._clock()
            return_request.reject(reason, now)
            order = await load_order(uow, return_request.order_id)
            order.resume_after_return_rejection(return_request.order_status_before, now)

            await uow.returns.save(return_request)
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Возврат {return_id} отклонен, заказ {order.id} снова {order.status.value}")
        return return_request
