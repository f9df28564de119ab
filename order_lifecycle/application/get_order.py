from datetime import timedelta

from order_lifecycle.application.common import Clock, utcnow
from order_lifecycle.domain.escrow import ESCROW_RELEASE_DELAY, EscrowView, calculate_escrow
from order_lifecycle.domain.exceptions import OrderNotFoundError, ValidationError
from order_lifecycle.domain.models import Order
from order_lifecycle.domain.specifications import CreatorIs, CustomerIs, StatusIn


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
            return order


class GetOrderEscrowUseCase:
    """Escrow считается заново при каждом запросе и никогда не сохраняется"""

    def __init__(self, unit_of_work, release_delay: timedelta = ESCROW_RELEASE_DELAY, clock: Clock = utcnow):
        self._uow = unit_of_work
        self._release_delay = release_delay
        self._clock = clock

    async def __call__(self, order_id: str) -> EscrowView:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
        return calculate_escrow(order.delivered_at, self._clock(), self._release_delay)


class ListOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self,
        creator_id: str | None = None,
        customer_id: str | None = None,
        statuses: list[str] | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Order]:
        if not creator_id and not customer_id:
            raise ValidationError("Нужно указать creator_id или customer_id")
        if limit < 1 or offset < 0:
            raise ValidationError("Некорректные параметры пагинации")

        spec = CreatorIs(creator_id) if creator_id else CustomerIs(customer_id)
        if creator_id and customer_id:
            spec = spec & CustomerIs(customer_id)
        if statuses:
            spec = spec & StatusIn(*statuses)

        async with self._uow() as uow:
            return await uow.orders.find(spec, limit=limit, offset=offset)
