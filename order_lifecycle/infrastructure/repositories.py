from collections import defaultdict
from datetime import datetime, timezone
from functools import singledispatch
from typing import Optional, List
from sqlalchemy import select, insert, update, and_, or_, not_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from order_lifecycle.application.interfaces import OrderRepository, ReturnRepository, DisputeRepository
from order_lifecycle.domain.disputes import Dispute, DisputeStatus, DisputeType
from order_lifecycle.domain.exceptions import (
    ActiveDisputeExistsError,
    ActiveReturnExistsError,
    ConcurrentUpdateError,
)
from order_lifecycle.domain.models import Order, OrderItem, OrderStatus, ShippingAddress
from order_lifecycle.domain.returns import ReturnReason, ReturnRequest, ReturnStatus
from order_lifecycle.domain.specifications import (
    AndSpecification,
    CreatorIs,
    CustomerIs,
    DeliveredBefore,
    NotSpecification,
    OrSpecification,
    Specification,
    StatusIn,
    WithoutActiveClaim,
)
from order_lifecycle.infrastructure.db_schema import (
    orders_tbl,
    order_items_tbl,
    return_requests_tbl,
    disputes_tbl,
)


def _utc(value: datetime | None) -> datetime | None:
    """Драйверы без поддержки timezone (sqlite) возвращают naive datetime, считаем его UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# Трансляция спецификаций в SQL-выражения над orders_tbl
@singledispatch
def compile_specification(spec: Specification):
    raise TypeError(f"Спецификация {type(spec).__name__} не поддерживается репозиторием")


@compile_specification.register(AndSpecification)
def _(spec):
    return and_(compile_specification(spec.left), compile_specification(spec.right))


@compile_specification.register(OrSpecification)
def _(spec):
    return or_(compile_specification(spec.left), compile_specification(spec.right))


@compile_specification.register(NotSpecification)
def _(spec):
    return not_(compile_specification(spec.inner))


@compile_specification.register(StatusIn)
def _(spec):
    return orders_tbl.c.status.in_(sorted(status.value for status in spec.statuses))


@compile_specification.register(CreatorIs)
def _(spec):
    return orders_tbl.c.creator_id == spec.creator_id


@compile_specification.register(CustomerIs)
def _(spec):
    return orders_tbl.c.customer_id == spec.customer_id


@compile_specification.register(DeliveredBefore)
def _(spec):
    return and_(orders_tbl.c.delivered_at.is_not(None), orders_tbl.c.delivered_at <= spec.cutoff)


@compile_specification.register(WithoutActiveClaim)
def _(spec):
    return and_(
        ~select(return_requests_tbl.c.id).where(return_requests_tbl.c.active_order_id == orders_tbl.c.id).exists(),
        ~select(disputes_tbl.c.id).where(disputes_tbl.c.active_order_id == orders_tbl.c.id).exists(),
    )


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        return await self._get(select(orders_tbl).where(orders_tbl.c.id == order_id))

    async def get_for_update(self, order_id: str) -> Optional[Order]:
        # Строка блокируется до конца транзакции: конкурирующие переходы ждут commit
        return await self._get(select(orders_tbl).where(orders_tbl.c.id == order_id).with_for_update())

    async def _get(self, stmt) -> Optional[Order]:
        result = await self._session.execute(stmt)
        row = result.fetchone()
        if not row:
            return None
        items = await self._load_items([row.id])
        return self._to_domain(row, items[row.id])

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            creator_id=order.creator_id,
            shipping_address=order.shipping_address.model_dump(),
            total_amount=order.total_amount,
            status=order.status.value,
            payment_reference=order.payment_reference,
            refund_reference=order.refund_reference,
            refund_reason=order.refund_reason,
            tracking_number=order.tracking_number,
            carrier=order.carrier,
            cancellation_reason=order.cancellation_reason,
            created_at=order.created_at,
            updated_at=order.updated_at,
            shipped_at=order.shipped_at,
            delivered_at=order.delivered_at,
            completed_at=order.completed_at,
            version=order.version,
        )
        await self._session.execute(stmt)
        await self._session.execute(
            insert(order_items_tbl),
            [
                {
                    "id": item.id,
                    "order_id": order.id,
                    "position": position,
                    "product_id": item.product_id,
                    "variant_id": item.variant_id,
                    "name": item.name,
                    "unit_price": item.unit_price,
                    "quantity": item.quantity,
                }
                for position, item in enumerate(order.items)
            ],
        )

    async def save(self, order: Order) -> None:
        # Позиции заказа неизменяемы и не перезаписываются
        stmt = (
            update(orders_tbl)
            .where(
                orders_tbl.c.id == order.id,
                orders_tbl.c.version == order.version,
            )
            .values(
                status=order.status.value,
                payment_reference=order.payment_reference,
                refund_reference=order.refund_reference,
                refund_reason=order.refund_reason,
                tracking_number=order.tracking_number,
                carrier=order.carrier,
                cancellation_reason=order.cancellation_reason,
                updated_at=order.updated_at,
                shipped_at=order.shipped_at,
                delivered_at=order.delivered_at,
                completed_at=order.completed_at,
                version=order.version + 1,
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrentUpdateError("Order", order.id, order.version)
        order.version += 1

    async def find(self, spec: Specification, limit: int = 50, offset: int = 0) -> List[Order]:
        result = await self._session.execute(
            select(orders_tbl)
            .where(compile_specification(spec))
            .order_by(orders_tbl.c.created_at.desc(), orders_tbl.c.id)
            .limit(limit)
            .offset(offset)
        )
        rows = result.fetchall()
        if not rows:
            return []
        items = await self._load_items([row.id for row in rows])
        return [self._to_domain(row, items[row.id]) for row in rows]

    async def _load_items(self, order_ids: list[str]) -> dict[str, list[OrderItem]]:
        result = await self._session.execute(
            select(order_items_tbl)
            .where(order_items_tbl.c.order_id.in_(order_ids))
            .order_by(order_items_tbl.c.order_id, order_items_tbl.c.position)
        )
        items = defaultdict(list)
        for row in result.fetchall():
            items[row.order_id].append(
                OrderItem(
                    id=row.id,
                    product_id=row.product_id,
                    variant_id=row.variant_id,
                    name=row.name,
                    unit_price=row.unit_price,
                    quantity=row.quantity,
                )
            )
        return items

    def _to_domain(self, row, items: list[OrderItem]) -> Order:
        """Трансформация DB → Domain"""
        return Order(
            id=row.id,
            order_number=row.order_number,
            customer_id=row.customer_id,
            customer_name=row.customer_name,
            customer_email=row.customer_email,
            creator_id=row.creator_id,
            items=items,
            shipping_address=ShippingAddress(**row.shipping_address),
            total_amount=row.total_amount,
            status=OrderStatus.parse(row.status),
            payment_reference=row.payment_reference,
            refund_reference=row.refund_reference,
            refund_reason=row.refund_reason,
            tracking_number=row.tracking_number,
            carrier=row.carrier,
            cancellation_reason=row.cancellation_reason,
            created_at=_utc(row.created_at),
            updated_at=_utc(row.updated_at),
            shipped_at=_utc(row.shipped_at),
            delivered_at=_utc(row.delivered_at),
            completed_at=_utc(row.completed_at),
            version=row.version,
        )


class SQLAlchemyReturnRepository(ReturnRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, return_id: str) -> Optional[ReturnRequest]:
        result = await self._session.execute(
            select(return_requests_tbl).where(return_requests_tbl.c.id == return_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_active_by_order_id(self, order_id: str) -> Optional[ReturnRequest]:
        result = await self._session.execute(
            select(return_requests_tbl).where(return_requests_tbl.c.active_order_id == order_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def create(self, return_request: ReturnRequest) -> None:
        stmt = insert(return_requests_tbl).values(
            id=return_request.id,
            order_id=return_request.order_id,
            **self._mutable_values(return_request),
            customer_id=return_request.customer_id,
            creator_id=return_request.creator_id,
            reason=return_request.reason.value,
            reason_details=return_request.reason_details,
            order_status_before=return_request.order_status_before.value,
            created_at=return_request.created_at,
            version=return_request.version,
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            raise ActiveReturnExistsError(return_request.order_id, return_request.order_status_before) from e

    async def save(self, return_request: ReturnRequest) -> None:
        stmt = (
            update(return_requests_tbl)
            .where(
                return_requests_tbl.c.id == return_request.id,
                return_requests_tbl.c.version == return_request.version,
            )
            .values(**self._mutable_values(return_request), version=return_request.version + 1)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrentUpdateError("ReturnRequest", return_request.id, return_request.version)
        return_request.version += 1

    async def list_by_creator(self, creator_id: str, limit: int = 50, offset: int = 0) -> List[ReturnRequest]:
        return await self._list(return_requests_tbl.c.creator_id == creator_id, limit, offset)

    async def list_by_customer(self, customer_id: str, limit: int = 50, offset: int = 0) -> List[ReturnRequest]:
        return await self._list(return_requests_tbl.c.customer_id == customer_id, limit, offset)

    async def _list(self, condition, limit: int, offset: int) -> List[ReturnRequest]:
        result = await self._session.execute(
            select(return_requests_tbl)
            .where(condition)
            .order_by(return_requests_tbl.c.created_at.desc(), return_requests_tbl.c.id)
            .limit(limit)
            .offset(offset)
        )
        return [self._to_domain(row) for row in result.fetchall()]

    @staticmethod
    def _mutable_values(return_request: ReturnRequest) -> dict:
        return {
            "active_order_id": return_request.order_id if return_request.status.is_active() else None,
            "status": return_request.status.value,
            "rejection_reason": return_request.rejection_reason,
            "tracking_number": return_request.tracking_number,
            "carrier": return_request.carrier,
            "refund_reference": return_request.refund_reference,
            "updated_at": return_request.updated_at,
            "approved_at": return_request.approved_at,
            "rejected_at": return_request.rejected_at,
            "shipped_back_at": return_request.shipped_back_at,
            "received_at": return_request.received_at,
            "refunded_at": return_request.refunded_at,
        }

    def _to_domain(self, row) -> ReturnRequest:
        return ReturnRequest(
            id=row.id,
            order_id=row.order_id,
            customer_id=row.customer_id,
            creator_id=row.creator_id,
            reason=ReturnReason(row.reason),
            reason_details=row.reason_details,
            status=ReturnStatus.parse(row.status),
            order_status_before=OrderStatus.parse(row.order_status_before),
            rejection_reason=row.rejection_reason,
            tracking_number=row.tracking_number,
            carrier=row.carrier,
            refund_reference=row.refund_reference,
            created_at=_utc(row.created_at),
            updated_at=_utc(row.updated_at),
            approved_at=_utc(row.approved_at),
            rejected_at=_utc(row.rejected_at),
            shipped_back_at=_utc(row.shipped_back_at),
            received_at=_utc(row.received_at),
            refunded_at=_utc(row.refunded_at),
            version=row.version,
        )


class SQLAlchemyDisputeRepository(DisputeRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, dispute_id: str) -> Optional[Dispute]:
        result = await self._session.execute(
            select(disputes_tbl).where(disputes_tbl.c.id == dispute_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_active_by_order_id(self, order_id: str) -> Optional[Dispute]:
        result = await self._session.execute(
            select(disputes_tbl).where(disputes_tbl.c.active_order_id == order_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def create(self, dispute: Dispute) -> None:
        stmt = insert(disputes_tbl).values(
            id=dispute.id,
            order_id=dispute.order_id,
            active_order_id=dispute.order_id if dispute.status.is_active() else None,
            customer_id=dispute.customer_id,
            creator_id=dispute.creator_id,
            type=dispute.type.value,
            description=dispute.description,
            status=dispute.status.value,
            resolution=dispute.resolution,
            resolved_at=dispute.resolved_at,
            created_at=dispute.created_at,
            updated_at=dispute.updated_at,
            version=dispute.version,
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            raise ActiveDisputeExistsError(dispute.order_id, None) from e

    async def save(self, dispute: Dispute) -> None:
        stmt = (
            update(disputes_tbl)
            .where(
                disputes_tbl.c.id == dispute.id,
                disputes_tbl.c.version == dispute.version,
            )
            .values(
                active_order_id=dispute.order_id if dispute.status.is_active() else None,
                status=dispute.status.value,
                resolution=dispute.resolution,
                resolved_at=dispute.resolved_at,
                updated_at=dispute.updated_at,
                version=dispute.version + 1,
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrentUpdateError("Dispute", dispute.id, dispute.version)
        dispute.version += 1

    def _to_domain(self, row) -> Dispute:
        return Dispute(
            id=row.id,
            order_id=row.order_id,
            customer_id=row.customer_id,
            creator_id=row.creator_id,
            type=DisputeType(row.type),
            description=row.description,
            status=DisputeStatus.parse(row.status),
            resolution=row.resolution,
            resolved_at=_utc(row.resolved_at),
            created_at=_utc(row.created_at),
            updated_at=_utc(row.updated_at),
            version=row.version,
        )
