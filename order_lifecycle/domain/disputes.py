import uuid
from datetime import datetime
from enum import Enum
from pydantic import BaseModel

from order_lifecycle.domain.exceptions import (
    InvalidStatusError,
    InvalidTransitionError,
    ValidationError,
)

MIN_DESCRIPTION_LENGTH = 10


class DisputeStatus(str, Enum):
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"

    @classmethod
    def parse(cls, value) -> "DisputeStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidStatusError(value, kind="спора") from None

    def is_active(self) -> bool:
        return self in (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW)

    def can_start_review(self) -> bool:
        return self == DisputeStatus.OPEN


class DisputeType(str, Enum):
    DAMAGED = "DAMAGED"
    NOT_RECEIVED = "NOT_RECEIVED"
    WRONG_ITEM = "WRONG_ITEM"
    NOT_AS_DESCRIBED = "NOT_AS_DESCRIBED"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value) -> "DisputeType":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Недопустимый тип спора: {value!r}") from None


class Dispute(BaseModel):
    """Domain Entity — спор по доставленному заказу"""
    id: str
    order_id: str
    customer_id: str
    creator_id: str
    type: DisputeType
    description: str
    status: DisputeStatus
    resolution: str | None = None
    resolved_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    version: int = 1

    @classmethod
    def create(
        cls,
        order_id: str,
        customer_id: str,
        creator_id: str,
        type: DisputeType,
        description: str,
        now: datetime,
    ) -> "Dispute":
        description = (description or "").strip()
        if not description:
            raise ValidationError("Описание проблемы обязательно")
        if len(description) < MIN_DESCRIPTION_LENGTH:
            raise ValidationError(f"Описание должно содержать не менее {MIN_DESCRIPTION_LENGTH} символов")
        return cls(
            id=str(uuid.uuid4()),
            order_id=order_id,
            customer_id=customer_id,
            creator_id=creator_id,
            type=type,
            description=description,
            status=DisputeStatus.OPEN,
            created_at=now,
            updated_at=now,
        )

    def start_review(self, now: datetime) -> None:
        if not self.status.can_start_review():
            raise InvalidTransitionError("start_dispute_review", self.status)
        self.status = DisputeStatus.UNDER_REVIEW
        self.updated_at = now

    def resolve(self, resolution: str, now: datetime) -> None:
        resolution = (resolution or "").strip()
        if not resolution:
            raise ValidationError("Решение по спору обязательно")
        if not self.status.is_active():
            raise InvalidTransitionError("resolve_dispute", self.status)
        self.status = DisputeStatus.RESOLVED
        self.resolution = resolution
        self.resolved_at = now
        self.updated_at = now

    def close(self, reason: str, now: datetime) -> None:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Причина закрытия спора обязательна")
        if not self.status.is_active():
            raise InvalidTransitionError("close_dispute", self.status)
        self.status = DisputeStatus.CLOSED
        self.resolution = reason
        self.updated_at = now
