from datetime import datetime, timezone
from typing import Callable

from order_lifecycle.domain.exceptions import (
    DisputeNotFoundError,
    OrderNotFoundError,
    ReturnNotFoundError,
    UnauthorizedError,
    ValidationError,
)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def require(value: str | None, field: str) -> str:
    """Обязательный строковый параметр: пустые и пробельные значения -> ValidationError"""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} обязателен")
    return str(value).strip()


def ensure_actor(actor_id: str | None, owner_id: str, message: str) -> None:
    if actor_id is not None and actor_id != owner_id:
        raise UnauthorizedError(message)


async def load_order(uow, order_id: str, for_update: bool = False):
    """for_update=True блокирует строку заказа до commit: нужно перед вызовом платежного сервиса"""
    if for_update:
        order = await uow.orders.get_for_update(order_id)
    else:
        order = await uow.orders.get_by_id(order_id)
    if not order:
        raise OrderNotFoundError(f"Заказ {order_id} не найден")
    return order


async def load_return(uow, return_id: str):
    return_request = await uow.returns.get_by_id(return_id)
    if not return_request:
        raise ReturnNotFoundError(f"Заявка на возврат {return_id} не найдена")
    return return_request


async def load_dispute(uow, dispute_id: str):
    dispute = await uow.disputes.get_by_id(dispute_id)
    if not dispute:
        raise DisputeNotFoundError(f"Спор {dispute_id} не найден")
    return dispute
