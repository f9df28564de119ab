import logging

from order_lifecycle.application.common import Clock, ensure_actor, load_order, require, utcnow
from order_lifecycle.application.interfaces import PaymentsService
from order_lifecycle.domain.exceptions import InvalidTransitionError, ValidationError
from order_lifecycle.domain.models import Order

logger = logging.getLogger(__name__)


class RefundOrderUseCase:
    """Возврат денег за заказ до завершения (PAID, SHIPPED, DELIVERED).

    Статус меняется только после подтверждения платежного сервиса; при
    ошибке или таймауте сервиса unit of work откатывается без изменений.
    """

    def __init__(self, unit_of_work, payments_service: PaymentsService, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._payments = payments_service
        self._clock = clock

    async def __call__(self, order_id: str, creator_id: str | None = None, reason: str | None = None) -> Order:
        order_id = require(order_id, "Order ID")

        async with self._uow() as uow:
            order = await load_order(uow, order_id, for_update=True)
            ensure_actor(creator_id, order.creator_id, "Заказ принадлежит другому создателю")
            if not order.can_be_refunded():
                logger.warning(f"Возврат по заказу {order_id} невозможен (status: {order.status.value})")
                raise InvalidTransitionError("refund", order.status)
            if not order.payment_reference:
                raise ValidationError(f"У заказа {order_id} нет ссылки на платеж")

            confirmation = await self._payments.refund(
                payment_reference=order.payment_reference,
                amount=order.total_amount,
                idempotency_key=f"order_refund_{order.id}",
            )

            order.refund(confirmation.id, self._clock(), reason)
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Заказ {order_id} отмечен REFUNDED (refund {confirmation.id}, сумма {confirmation.amount})")
        return order
