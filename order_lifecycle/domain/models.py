import uuid
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict

from order_lifecycle.domain.exceptions import (
    InvalidStatusError,
    InvalidTransitionError,
    ValidationError,
)


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    VALIDATION_PENDING = "VALIDATION_PENDING"
    COMPLETED = "COMPLETED"
    DISPUTE_OPENED = "DISPUTE_OPENED"
    RETURN_SHIPPED = "RETURN_SHIPPED"
    RETURN_RECEIVED = "RETURN_RECEIVED"
    REFUNDED = "REFUNDED"
    CANCELED = "CANCELED"

    @classmethod
    def parse(cls, value) -> "OrderStatus":
        """Строка из БД или запроса -> статус. Неизвестные значения не приводятся."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidStatusError(value) from None

    def allowed_transitions(self) -> frozenset["OrderStatus"]:
        return ORDER_TRANSITIONS[self]

    def can_transition_to(self, target: "OrderStatus") -> bool:
        return target in ORDER_TRANSITIONS[self]

    def is_terminal(self) -> bool:
        return self in TERMINAL_ORDER_STATUSES

    def can_be_paid(self) -> bool:
        return self == OrderStatus.PENDING

    def can_be_cancelled(self) -> bool:
        return self in (OrderStatus.PENDING, OrderStatus.PAID)

    def can_be_shipped(self) -> bool:
        return self == OrderStatus.PAID

    def can_be_delivered(self) -> bool:
        return self == OrderStatus.SHIPPED

    def can_be_refunded(self) -> bool:
        return self in (OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED)

    def can_open_dispute(self) -> bool:
        return self == OrderStatus.DELIVERED

    def can_request_return(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.COMPLETED)

    def can_be_completed(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.VALIDATION_PENDING)


# Каждый статус обязан иметь запись: тесты сверяют ключи с OrderStatus
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELED}),
    OrderStatus.PAID: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELED, OrderStatus.REFUNDED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.REFUNDED}),
    OrderStatus.DELIVERED: frozenset({
        OrderStatus.COMPLETED,
        OrderStatus.VALIDATION_PENDING,
        OrderStatus.DISPUTE_OPENED,
        OrderStatus.REFUNDED,
    }),
    OrderStatus.VALIDATION_PENDING: frozenset({
        OrderStatus.RETURN_SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.COMPLETED,
    }),
    OrderStatus.DISPUTE_OPENED: frozenset({OrderStatus.DELIVERED, OrderStatus.REFUNDED}),
    OrderStatus.RETURN_SHIPPED: frozenset({OrderStatus.RETURN_RECEIVED}),
    OrderStatus.RETURN_RECEIVED: frozenset({OrderStatus.REFUNDED}),
    # COMPLETED закрыт для всех операций, кроме заявки на возврат в пределах срока
    OrderStatus.COMPLETED: frozenset({OrderStatus.VALIDATION_PENDING}),
    OrderStatus.REFUNDED: frozenset(),
    OrderStatus.CANCELED: frozenset(),
}

TERMINAL_ORDER_STATUSES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.REFUNDED,
    OrderStatus.CANCELED,
})


class OrderItem(BaseModel):
    """Value Object — позиция заказа, снимок цены на момент оформления"""
    model_config = ConfigDict(frozen=True)

    id: str
    product_id: str
    variant_id: str | None = None
    name: str
    unit_price: int
    quantity: int

    @property
    def subtotal(self) -> int:
        return self.unit_price * self.quantity


class ShippingAddress(BaseModel):
    model_config = ConfigDict(frozen=True)

    street: str
    city: str
    postal_code: str
    country: str


def generate_order_number(now: datetime) -> str:
    return f"ORD-{now:%y%m%d}-{uuid.uuid4().hex[:6].upper()}"


class Order(BaseModel):
    """Domain Entity — заказ (агрегат)

    Статус меняется только через методы перехода ниже; каждый метод
    сверяется с ORDER_TRANSITIONS и поднимает InvalidTransitionError.
    """
    id: str
    order_number: str
    customer_id: str
    customer_name: str
    customer_email: str
    creator_id: str
    items: list[OrderItem]
    shipping_address: ShippingAddress
    total_amount: int
    status: OrderStatus
    payment_reference: str | None = None
    refund_reference: str | None = None
    refund_reason: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    version: int = 1

    @classmethod
    def create(
        cls,
        customer_id: str,
        customer_name: str,
        customer_email: str,
        creator_id: str,
        items: list[OrderItem],
        shipping_address: ShippingAddress,
        now: datetime,
    ) -> "Order":
        if not items:
            raise ValidationError("Заказ должен содержать хотя бы одну позицию")
        for item in items:
            if item.quantity < 1:
                raise ValidationError(f"Некорректное количество для {item.product_id}: {item.quantity}")
            if item.unit_price < 0:
                raise ValidationError(f"Отрицательная цена для {item.product_id}")
        return cls(
            id=str(uuid.uuid4()),
            order_number=generate_order_number(now),
            customer_id=customer_id,
            customer_name=customer_name,
            customer_email=customer_email,
            creator_id=creator_id,
            items=items,
            shipping_address=shipping_address,
            total_amount=sum(item.subtotal for item in items),
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    def can_be_paid(self) -> bool:
        """Бизнес-правило: можно оплатить только PENDING заказ"""
        return self.status.can_be_paid()

    def can_be_cancelled(self) -> bool:
        """Бизнес-правило: можно отменить только PENDING или PAID"""
        return self.status.can_be_cancelled()

    def can_be_shipped(self) -> bool:
        """Бизнес-правило: можно отправить только PAID"""
        return self.status.can_be_shipped()

    def can_be_refunded(self) -> bool:
        """Бизнес-правило: вернуть деньги можно за PAID, SHIPPED или DELIVERED"""
        return self.status.can_be_refunded()

    def _transition(self, operation: str, target: OrderStatus, allowed: bool, now: datetime) -> None:
        if not allowed or not self.status.can_transition_to(target):
            raise InvalidTransitionError(operation, self.status)
        self.status = target
        self.updated_at = now

    def mark_as_paid(self, payment_reference: str, now: datetime) -> None:
        self._transition("pay", OrderStatus.PAID, self.can_be_paid(), now)
        self.payment_reference = payment_reference

    def ship(self, tracking_number: str, carrier: str, now: datetime) -> None:
        tracking_number = (tracking_number or "").strip()
        carrier = (carrier or "").strip()
        if not tracking_number:
            raise ValidationError("Трек-номер обязателен")
        if not carrier:
            raise ValidationError("Перевозчик обязателен")
        self._transition("ship", OrderStatus.SHIPPED, self.can_be_shipped(), now)
        self.tracking_number = tracking_number
        self.carrier = carrier
        self.shipped_at = now

    def mark_as_delivered(self, now: datetime) -> None:
        self._transition("confirm_delivery", OrderStatus.DELIVERED, self.status.can_be_delivered(), now)
        self.delivered_at = now

    def cancel(self, reason: str, now: datetime) -> None:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Причина отмены обязательна")
        self._transition("cancel", OrderStatus.CANCELED, self.can_be_cancelled(), now)
        self.cancellation_reason = reason

    def refund(self, refund_reference: str, now: datetime, reason: str | None = None) -> None:
        self._transition("refund", OrderStatus.REFUNDED, self.can_be_refunded(), now)
        self.refund_reference = refund_reference
        self.refund_reason = (reason or "").strip() or None

    def open_dispute(self, now: datetime) -> None:
        self._transition("open_dispute", OrderStatus.DISPUTE_OPENED, self.status.can_open_dispute(), now)

    def close_dispute(self, now: datetime) -> None:
        self._transition(
            "close_dispute", OrderStatus.DELIVERED, self.status == OrderStatus.DISPUTE_OPENED, now
        )

    def refund_dispute(self, refund_reference: str, now: datetime) -> None:
        self._transition(
            "refund_dispute", OrderStatus.REFUNDED, self.status == OrderStatus.DISPUTE_OPENED, now
        )
        self.refund_reference = refund_reference

    def complete(self, now: datetime) -> None:
        self._transition("complete", OrderStatus.COMPLETED, self.status.can_be_completed(), now)
        self.completed_at = now

    def request_return(self, now: datetime) -> OrderStatus:
        """Переводит заказ в VALIDATION_PENDING и возвращает прерванный статус."""
        previous = self.status
        self._transition(
            "create_return", OrderStatus.VALIDATION_PENDING, self.status.can_request_return(), now
        )
        return previous

    def resume_after_return_rejection(self, previous: OrderStatus, now: datetime) -> None:
        self._transition(
            "reject_return",
            previous,
            self.status == OrderStatus.VALIDATION_PENDING and previous.can_request_return(),
            now,
        )

    def mark_return_shipped(self, now: datetime) -> None:
        self._transition(
            "ship_back_return", OrderStatus.RETURN_SHIPPED, self.status == OrderStatus.VALIDATION_PENDING, now
        )

    def mark_return_received(self, now: datetime) -> None:
        self._transition(
            "receive_return", OrderStatus.RETURN_RECEIVED, self.status == OrderStatus.RETURN_SHIPPED, now
        )

    def refund_return(self, refund_reference: str, now: datetime) -> None:
        self._transition(
            "refund_return", OrderStatus.REFUNDED, self.status == OrderStatus.RETURN_RECEIVED, now
        )
        self.refund_reference = refund_reference
