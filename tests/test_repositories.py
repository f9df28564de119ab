"""Tests for SQLAlchemy repositories: mapping, compare-and-set, active-row uniqueness."""
from datetime import timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import update
from sqlalchemy.dialects import postgresql

from order_lifecycle.domain.disputes import Dispute, DisputeType
from order_lifecycle.domain.exceptions import (
    ActiveDisputeExistsError,
    ActiveReturnExistsError,
    ConcurrentUpdateError,
    InvalidStatusError,
)
from order_lifecycle.domain.models import OrderStatus
from order_lifecycle.domain.returns import ReturnReason, ReturnRequest
from order_lifecycle.infrastructure.db_schema import orders_tbl
from order_lifecycle.infrastructure.repositories import SQLAlchemyOrderRepository

from tests.conftest import CREATOR_ID, CUSTOMER_ID, NOW


def _return_request(order_id):
    return ReturnRequest.create(
        order_id=order_id,
        customer_id=CUSTOMER_ID,
        creator_id=CREATOR_ID,
        reason=ReturnReason.OTHER,
        reason_details=None,
        order_status_before=OrderStatus.DELIVERED,
        now=NOW,
    )


def _dispute(order_id):
    return Dispute.create(
        order_id=order_id,
        customer_id=CUSTOMER_ID,
        creator_id=CREATOR_ID,
        type=DisputeType.NOT_RECEIVED,
        description="Посылка так и не пришла",
        now=NOW,
    )


class _RecordingSession:
    """Сессия-заглушка: запоминает выражения и ничего не находит"""

    def __init__(self):
        self.statements = []

    async def execute(self, stmt, *args):
        self.statements.append(stmt)
        return SimpleNamespace(fetchone=lambda: None)


class TestOrderRepository:
    async def test_round_trip_keeps_timezone(self, uow, store_order):
        order = await store_order(OrderStatus.DELIVERED, delivered_at=NOW - timedelta(hours=3))
        async with uow() as tx:
            stored = await tx.orders.get_by_id(order.id)

        assert stored.delivered_at == NOW - timedelta(hours=3)
        assert stored.delivered_at.tzinfo is not None
        assert stored.items == order.items
        assert stored.shipping_address == order.shipping_address

    async def test_get_for_update_loads_order(self, uow, store_order):
        order = await store_order(OrderStatus.PAID)
        async with uow() as tx:
            locked = await tx.orders.get_for_update(order.id)
            assert await tx.orders.get_for_update("missing") is None
        assert (locked.id, locked.status, locked.version) == (order.id, OrderStatus.PAID, 1)
        assert locked.items == order.items

    async def test_get_for_update_selects_row_lock(self):
        session = _RecordingSession()
        await SQLAlchemyOrderRepository(session).get_for_update("order-1")
        await SQLAlchemyOrderRepository(session).get_by_id("order-1")

        locked_sql, plain_sql = (str(stmt.compile(dialect=postgresql.dialect())) for stmt in session.statements)
        assert locked_sql.endswith("FOR UPDATE")
        assert "FOR UPDATE" not in plain_sql

    async def test_save_increments_version(self, uow, store_order):
        order = await store_order(OrderStatus.PAID)
        async with uow() as tx:
            loaded = await tx.orders.get_by_id(order.id)
            loaded.cancel("Нет в наличии", NOW)
            await tx.orders.save(loaded)
            await tx.commit()
        assert loaded.version == 2

    async def test_stale_save_raises_and_leaves_row(self, uow, store_order):
        order = await store_order(OrderStatus.PAID)
        async with uow() as tx:
            first = await tx.orders.get_by_id(order.id)
        async with uow() as tx:
            second = await tx.orders.get_by_id(order.id)

        async with uow() as tx:
            first.ship("T1", "DHL", NOW)
            await tx.orders.save(first)
            await tx.commit()

        with pytest.raises(ConcurrentUpdateError):
            async with uow() as tx:
                second.cancel("Передумал", NOW)
                await tx.orders.save(second)
                await tx.commit()

        async with uow() as tx:
            stored = await tx.orders.get_by_id(order.id)
        assert stored.status == OrderStatus.SHIPPED
        assert stored.version == 2

    async def test_uncommitted_changes_are_rolled_back(self, uow, store_order):
        order = await store_order(OrderStatus.PAID)
        async with uow() as tx:
            loaded = await tx.orders.get_by_id(order.id)
            loaded.cancel("Передумал", NOW)
            await tx.orders.save(loaded)

        async with uow() as tx:
            assert (await tx.orders.get_by_id(order.id)).status == OrderStatus.PAID

    async def test_unknown_status_in_db(self, uow, session_factory, store_order):
        order = await store_order(OrderStatus.PAID)
        async with session_factory() as session:
            await session.execute(update(orders_tbl).where(orders_tbl.c.id == order.id).values(status="LOST"))
            await session.commit()

        with pytest.raises(InvalidStatusError):
            async with uow() as tx:
                await tx.orders.get_by_id(order.id)

    async def test_missing_order(self, uow):
        async with uow() as tx:
            assert await tx.orders.get_by_id("missing") is None


class TestReturnRepository:
    async def test_one_active_return_per_order(self, uow, store_order):
        order = await store_order(OrderStatus.DELIVERED, delivered_at=NOW)
        async with uow() as tx:
            await tx.returns.create(_return_request(order.id))
            await tx.commit()

        with pytest.raises(ActiveReturnExistsError):
            async with uow() as tx:
                await tx.returns.create(_return_request(order.id))

    async def test_terminal_return_frees_the_slot(self, uow, store_order):
        order = await store_order(OrderStatus.DELIVERED, delivered_at=NOW)
        first = _return_request(order.id)
        async with uow() as tx:
            await tx.returns.create(first)
            await tx.commit()

        async with uow() as tx:
            first.reject("Не подходит", NOW)
            await tx.returns.save(first)
            await tx.returns.create(_return_request(order.id))
            await tx.commit()

        async with uow() as tx:
            active = await tx.returns.get_active_by_order_id(order.id)
        assert active is not None
        assert active.id != first.id

    async def test_stale_return_save(self, uow, store_order):
        order = await store_order(OrderStatus.DELIVERED, delivered_at=NOW)
        return_request = _return_request(order.id)
        async with uow() as tx:
            await tx.returns.create(return_request)
            await tx.commit()

        async with uow() as tx:
            stale = await tx.returns.get_by_id(return_request.id)
        async with uow() as tx:
            return_request.approve(NOW)
            await tx.returns.save(return_request)
            await tx.commit()

        with pytest.raises(ConcurrentUpdateError):
            async with uow() as tx:
                stale.reject("Поздно", NOW)
                await tx.returns.save(stale)


class TestDisputeRepository:
    async def test_one_active_dispute_per_order(self, uow, store_order):
        order = await store_order(OrderStatus.DELIVERED, delivered_at=NOW)
        async with uow() as tx:
            await tx.disputes.create(_dispute(order.id))
            await tx.commit()

        with pytest.raises(ActiveDisputeExistsError):
            async with uow() as tx:
                await tx.disputes.create(_dispute(order.id))

    async def test_round_trip(self, uow, store_order):
        order = await store_order(OrderStatus.DELIVERED, delivered_at=NOW)
        dispute = _dispute(order.id)
        async with uow() as tx:
            await tx.disputes.create(dispute)
            await tx.commit()

        async with uow() as tx:
            stored = await tx.disputes.get_by_id(dispute.id)
        assert stored.type == DisputeType.NOT_RECEIVED
        assert stored.created_at == NOW
