import uuid
from datetime import datetime, timedelta
from enum import Enum
from pydantic import BaseModel

from order_lifecycle.domain.exceptions import (
    InvalidStatusError,
    InvalidTransitionError,
    ValidationError,
)
from order_lifecycle.domain.models import OrderStatus

RETURN_WINDOW_DAYS = 14


class ReturnStatus(str, Enum):
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SHIPPED_BACK = "SHIPPED_BACK"
    RECEIVED = "RECEIVED"
    REFUNDED = "REFUNDED"

    @classmethod
    def parse(cls, value) -> "ReturnStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidStatusError(value, kind="возврата") from None

    def is_terminal(self) -> bool:
        return self in (ReturnStatus.REJECTED, ReturnStatus.REFUNDED)

    def is_active(self) -> bool:
        return not self.is_terminal()


class ReturnReason(str, Enum):
    DEFECTIVE = "DEFECTIVE"
    NOT_AS_DESCRIBED = "NOT_AS_DESCRIBED"
    CHANGED_MIND = "CHANGED_MIND"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value) -> "ReturnReason":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Недопустимая причина возврата: {value!r}") from None


def days_since_delivery(delivered_at: datetime, now: datetime) -> int:
    return (now - delivered_at) // timedelta(days=1)


def can_request_return(delivered_at: datetime, now: datetime, window_days: int = RETURN_WINDOW_DAYS) -> bool:
    return days_since_delivery(delivered_at, now) <= window_days


class ReturnRequest(BaseModel):
    """Domain Entity — заявка на возврат

    REQUESTED -> APPROVED -> SHIPPED_BACK -> RECEIVED -> REFUNDED
              -> REJECTED
    """
    id: str
    order_id: str
    customer_id: str
    creator_id: str
    reason: ReturnReason
    reason_details: str | None = None
    status: ReturnStatus
    order_status_before: OrderStatus
    rejection_reason: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    refund_reference: str | None = None
    created_at: datetime
    updated_at: datetime
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    shipped_back_at: datetime | None = None
    received_at: datetime | None = None
    refunded_at: datetime | None = None
    version: int = 1

    @classmethod
    def create(
        cls,
        order_id: str,
        customer_id: str,
        creator_id: str,
        reason: ReturnReason,
        reason_details: str | None,
        order_status_before: OrderStatus,
        now: datetime,
    ) -> "ReturnRequest":
        details = reason_details.strip() if reason_details else None
        return cls(
            id=str(uuid.uuid4()),
            order_id=order_id,
            customer_id=customer_id,
            creator_id=creator_id,
            reason=reason,
            reason_details=details or None,
            status=ReturnStatus.REQUESTED,
            order_status_before=order_status_before,
            created_at=now,
            updated_at=now,
        )

    def _transition(self, operation: str, expected: ReturnStatus, target: ReturnStatus, now: datetime) -> None:
        if self.status != expected:
            raise InvalidTransitionError(operation, self.status)
        self.status = target
        self.updated_at = now

    def approve(self, now: datetime) -> None:
        self._transition("approve_return", ReturnStatus.REQUESTED, ReturnStatus.APPROVED, now)
        self.approved_at = now

    def reject(self, rejection_reason: str, now: datetime) -> None:
        rejection_reason = (rejection_reason or "").strip()
        if not rejection_reason:
            raise ValidationError("Причина отклонения обязательна")
        self._transition("reject_return", ReturnStatus.REQUESTED, ReturnStatus.REJECTED, now)
        self.rejection_reason = rejection_reason
        self.rejected_at = now

    def mark_as_shipped_back(self, tracking_number: str, carrier: str, now: datetime) -> None:
        tracking_number = (tracking_number or "").strip()
        carrier = (carrier or "").strip()
        if not tracking_number:
            raise ValidationError("Трек-номер обязателен")
        if not carrier:
            raise ValidationError("Перевозчик обязателен")
        self._transition("ship_back_return", ReturnStatus.APPROVED, ReturnStatus.SHIPPED_BACK, now)
        self.tracking_number = tracking_number
        self.carrier = carrier
        self.shipped_back_at = now

    def mark_as_received(self, now: datetime) -> None:
        self._transition("receive_return", ReturnStatus.SHIPPED_BACK, ReturnStatus.RECEIVED, now)
        self.received_at = now

    def mark_as_refunded(self, refund_reference: str, now: datetime) -> None:
        self._transition("refund_return", ReturnStatus.RECEIVED, ReturnStatus.REFUNDED, now)
        self.refund_reference = refund_reference
        self.refunded_at = now
