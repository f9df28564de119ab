"""Расчет выплаты создателю (escrow).

Состояние escrow нигде не хранится: оно каждый раз вычисляется из даты
доставки и текущего времени, поэтому не может устареть.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from pydantic import BaseModel

ESCROW_RELEASE_DELAY = timedelta(hours=48)

_HOUR = timedelta(hours=1)


class EscrowStatus(str, Enum):
    NOT_DELIVERED = "NOT_DELIVERED"
    PENDING_RELEASE = "PENDING_RELEASE"
    RELEASED = "RELEASED"


class EscrowView(BaseModel):
    status: EscrowStatus
    release_date: datetime | None = None
    remaining_hours: int | None = None
    is_released: bool = False


def calculate_escrow(
    delivered_at: datetime | None,
    now: datetime | None = None,
    release_delay: timedelta = ESCROW_RELEASE_DELAY,
) -> EscrowView:
    if delivered_at is None:
        return EscrowView(status=EscrowStatus.NOT_DELIVERED)

    if now is None:
        now = datetime.now(timezone.utc)

    release_date = delivered_at + release_delay
    if now >= release_date:
        return EscrowView(
            status=EscrowStatus.RELEASED,
            release_date=release_date,
            remaining_hours=0,
            is_released=True,
        )

    # Неполный час округляется вверх: 1 секунда до выплаты -> 1 час
    remaining_hours = -((now - release_date) // _HOUR)
    return EscrowView(
        status=EscrowStatus.PENDING_RELEASE,
        release_date=release_date,
        remaining_hours=remaining_hours,
        is_released=False,
    )
