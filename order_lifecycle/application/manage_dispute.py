import logging
from pydantic import BaseModel

from order_lifecycle.application.common import (
    Clock,
    load_dispute,
    load_order,
    require,
    utcnow,
)
from order_lifecycle.application.interfaces import PaymentsService
from order_lifecycle.domain.disputes import Dispute, DisputeType
from order_lifecycle.domain.models import OrderStatus
from order_lifecycle.domain.exceptions import (
    ActiveDisputeExistsError,
    InvalidTransitionError,
    UnauthorizedError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class OpenDisputeDTO(BaseModel):
    order_id: str
    customer_id: str
    type: str
    description: str


class OpenDisputeUseCase:
    """Спор по доставленному заказу, вне процесса возврата. Заказ -> DISPUTE_OPENED"""

    def __init__(self, unit_of_work, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(self, dto: OpenDisputeDTO) -> Dispute:
        order_id = require(dto.order_id, "Order ID")
        customer_id = require(dto.customer_id, "Customer ID")
        dispute_type = DisputeType.parse(require(dto.type, "Тип спора"))

        async with self._uow() as uow:
            order = await load_order(uow, order_id)
            if order.customer_id != customer_id:
                raise UnauthorizedError("Заказ принадлежит другому покупателю")
            if await uow.disputes.get_active_by_order_id(order_id):
                raise ActiveDisputeExistsError(order_id, order.status)

            now = self._clock()
            dispute = Dispute.create(
                order_id=order.id,
                customer_id=customer_id,
                creator_id=order.creator_id,
                type=dispute_type,
                description=dto.description,
                now=now,
            )
            order.open_dispute(now)

            await uow.disputes.create(dispute)
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Спор {dispute.id} ({dispute_type.value}) открыт, заказ {order_id} отмечен DISPUTE_OPENED")
        return dispute


class StartDisputeReviewUseCase:
    def __init__(self, unit_of_work, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(self, dispute_id: str) -> Dispute:
        dispute_id = require(dispute_id, "Dispute ID")
        async with self._uow() as uow:
            dispute = await load_dispute(uow, dispute_id)
            dispute.start_review(self._clock())
            await uow.disputes.save(dispute)
            await uow.commit()

        logger.info(f"Спор {dispute_id} взят в работу")
        return dispute


class ResolveDisputeUseCase:
    """Решение спора.

    refund=True: сначала возврат денег через платежный сервис, затем
    заказ -> REFUNDED. Иначе заказ возвращается в DELIVERED.
    """

    def __init__(self, unit_of_work, payments_service: PaymentsService, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._payments = payments_service
        self._clock = clock

    async def __call__(self, dispute_id: str, resolution: str, refund: bool = False) -> Dispute:
        dispute_id = require(dispute_id, "Dispute ID")
        resolution = require(resolution, "Решение по спору")

        async with self._uow() as uow:
            dispute = await load_dispute(uow, dispute_id)
            if not dispute.status.is_active():
                raise InvalidTransitionError("resolve_dispute", dispute.status)
            order = await load_order(uow, dispute.order_id, for_update=refund)

            refund_reference = None
            if refund:
                if not order.payment_reference:
                    raise ValidationError(f"У заказа {order.id} нет ссылки на платеж")
                if order.status != OrderStatus.DISPUTE_OPENED:
                    raise InvalidTransitionError("refund_dispute", order.status)
                confirmation = await self._payments.refund(
                    payment_reference=order.payment_reference,
                    amount=order.total_amount,
                    idempotency_key=f"dispute_refund_{dispute.id}",
                )
                refund_reference = confirmation.id

            now = self._clock()
            dispute.resolve(resolution, now)
            if refund_reference:
                order.refund_dispute(refund_reference, now)
            else:
                order.close_dispute(now)

            await uow.disputes.save(dispute)
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Спор {dispute_id} решен, заказ {order.id} отмечен {order.status.value}")
        return dispute


class CloseDisputeUseCase:
    def __init__(self, unit_of_work, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(self, dispute_id: str, reason: str) -> Dispute:
        dispute_id = require(dispute_id, "Dispute ID")
        reason = require(reason, "Причина закрытия")

        async with self._uow() as uow:
            dispute = await load_dispute(uow, dispute_id)
            now = self._clock()
            dispute.close(reason, now)
            order = await load_order(uow, dispute.order_id)
            order.close_dispute(now)

            await uow.disputes.save(dispute)
            await uow.orders.save(order)
            await uow.commit()

        logger.info(f"Спор {dispute_id} закрыт, заказ {order.id} снова DELIVERED")
        return dispute
