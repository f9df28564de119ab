"""Спецификации для выборок заказов.

Спецификация проверяется в памяти через is_satisfied_by(), а репозиторий
транслирует то же дерево в SQL (см. infrastructure/repositories.py).
"""
from dataclasses import dataclass
from datetime import datetime

from order_lifecycle.domain.models import Order, OrderStatus


class Specification:
    def is_satisfied_by(self, order: Order) -> bool:
        raise NotImplementedError

    def __and__(self, other: "Specification") -> "Specification":
        return AndSpecification(self, other)

    def __or__(self, other: "Specification") -> "Specification":
        return OrSpecification(self, other)

    def __invert__(self) -> "Specification":
        return NotSpecification(self)


@dataclass(frozen=True)
class AndSpecification(Specification):
    left: Specification
    right: Specification

    def is_satisfied_by(self, order: Order) -> bool:
        return self.left.is_satisfied_by(order) and self.right.is_satisfied_by(order)


@dataclass(frozen=True)
class OrSpecification(Specification):
    left: Specification
    right: Specification

    def is_satisfied_by(self, order: Order) -> bool:
        return self.left.is_satisfied_by(order) or self.right.is_satisfied_by(order)


@dataclass(frozen=True)
class NotSpecification(Specification):
    inner: Specification

    def is_satisfied_by(self, order: Order) -> bool:
        return not self.inner.is_satisfied_by(order)


@dataclass(frozen=True)
class StatusIn(Specification):
    statuses: frozenset[OrderStatus]

    def __init__(self, *statuses: OrderStatus):
        object.__setattr__(self, "statuses", frozenset(OrderStatus.parse(s) for s in statuses))

    def is_satisfied_by(self, order: Order) -> bool:
        return order.status in self.statuses


@dataclass(frozen=True)
class CreatorIs(Specification):
    creator_id: str

    def is_satisfied_by(self, order: Order) -> bool:
        return order.creator_id == self.creator_id


@dataclass(frozen=True)
class CustomerIs(Specification):
    customer_id: str

    def is_satisfied_by(self, order: Order) -> bool:
        return order.customer_id == self.customer_id


@dataclass(frozen=True)
class DeliveredBefore(Specification):
    """Доставлен не позже cutoff (граница включительно)."""
    cutoff: datetime

    def is_satisfied_by(self, order: Order) -> bool:
        return order.delivered_at is not None and order.delivered_at <= self.cutoff


CLAIM_STATUSES = frozenset({
    OrderStatus.VALIDATION_PENDING,
    OrderStatus.RETURN_SHIPPED,
    OrderStatus.RETURN_RECEIVED,
    OrderStatus.DISPUTE_OPENED,
})


@dataclass(frozen=True)
class WithoutActiveClaim(Specification):
    """Нет активной заявки на возврат и открытого спора.

    В памяти судим по статусу заказа: активная заявка или спор всегда держат
    заказ в одном из CLAIM_STATUSES. В SQL проверяются сами таблицы возвратов и споров.
    """

    def is_satisfied_by(self, order: Order) -> bool:
        return order.status not in CLAIM_STATUSES


def awaiting_completion(cutoff: datetime) -> Specification:
    return (
        StatusIn(OrderStatus.DELIVERED, OrderStatus.VALIDATION_PENDING)
        & DeliveredBefore(cutoff)
        & WithoutActiveClaim()
    )
