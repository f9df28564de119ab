"""Tests for order completion after escrow release."""
from datetime import timedelta

import pytest

from order_lifecycle.application.complete_orders import CompleteDeliveredOrdersUseCase, CompleteOrderUseCase
from order_lifecycle.application.create_return import CreateReturnDTO, CreateReturnUseCase
from order_lifecycle.domain.exceptions import InvalidTransitionError
from order_lifecycle.domain.models import OrderStatus

from tests.conftest import CUSTOMER_ID


async def _status(uow, order_id):
    async with uow() as tx:
        return (await tx.orders.get_by_id(order_id)).status


class TestCompleteOrder:
    async def test_completes_after_escrow_release(self, uow, clock, delivered_order):
        order = await delivered_order()
        clock.advance(hours=48)

        completed = await CompleteOrderUseCase(uow, clock=clock)(order.id)

        assert completed.status == OrderStatus.COMPLETED
        assert completed.completed_at == clock()

    async def test_escrow_not_released(self, uow, clock, delivered_order):
        order = await delivered_order()
        clock.advance(hours=47)
        with pytest.raises(InvalidTransitionError):
            await CompleteOrderUseCase(uow, clock=clock)(order.id)
        assert await _status(uow, order.id) == OrderStatus.DELIVERED

    async def test_already_completed_is_noop(self, uow, clock, delivered_order):
        order = await delivered_order()
        clock.advance(days=3)
        use_case = CompleteOrderUseCase(uow, clock=clock)
        first = await use_case(order.id)
        second = await use_case(order.id)
        assert second.version == first.version

    async def test_active_return_blocks_completion(self, uow, clock, delivered_order):
        order = await delivered_order()
        await CreateReturnUseCase(uow, clock=clock)(
            CreateReturnDTO(order_id=order.id, customer_id=CUSTOMER_ID, reason="DEFECTIVE")
        )
        clock.advance(days=3)
        with pytest.raises(InvalidTransitionError):
            await CompleteOrderUseCase(uow, clock=clock)(order.id)
        assert await _status(uow, order.id) == OrderStatus.VALIDATION_PENDING

    async def test_not_delivered(self, uow, clock, store_order):
        order = await store_order(OrderStatus.SHIPPED)
        with pytest.raises(InvalidTransitionError):
            await CompleteOrderUseCase(uow, clock=clock)(order.id)


class TestCompletionSweep:
    async def test_completes_only_released_orders(self, uow, clock, delivered_order, store_order):
        old = await delivered_order(delivered_at=clock() - timedelta(days=3))
        fresh = await delivered_order(delivered_at=clock() - timedelta(hours=5))
        paid = await store_order(OrderStatus.PAID)

        completed = await CompleteDeliveredOrdersUseCase(uow, clock=clock)()

        assert completed == 1
        assert await _status(uow, old.id) == OrderStatus.COMPLETED
        assert await _status(uow, fresh.id) == OrderStatus.DELIVERED
        assert await _status(uow, paid.id) == OrderStatus.PAID

    async def test_sweep_is_idempotent(self, uow, clock, delivered_order):
        await delivered_order(delivered_at=clock() - timedelta(days=3))
        sweep = CompleteDeliveredOrdersUseCase(uow, clock=clock)
        assert await sweep() == 1
        assert await sweep() == 0

    async def test_sweep_skips_orders_with_active_return(self, uow, clock, delivered_order):
        blocked = await delivered_order(delivered_at=clock() - timedelta(days=3))
        await CreateReturnUseCase(uow, clock=clock)(
            CreateReturnDTO(order_id=blocked.id, customer_id=CUSTOMER_ID, reason="CHANGED_MIND")
        )
        ready = await delivered_order(delivered_at=clock() - timedelta(days=3))

        assert await CompleteDeliveredOrdersUseCase(uow, clock=clock)() == 1
        assert await _status(uow, blocked.id) == OrderStatus.VALIDATION_PENDING
        assert await _status(uow, ready.id) == OrderStatus.COMPLETED

    async def test_respects_limit(self, uow, clock, delivered_order):
        for _ in range(3):
            await delivered_order(delivered_at=clock() - timedelta(days=3))
        assert await CompleteDeliveredOrdersUseCase(uow, clock=clock)(limit=2) == 2

    async def test_orders_with_open_claims_do_not_starve_the_batch(self, uow, clock, delivered_order, store_order):
        ready = await store_order(
            OrderStatus.DELIVERED,
            delivered_at=clock() - timedelta(days=3),
            created_at=clock() - timedelta(days=10),
        )
        for _ in range(2):
            claimed = await delivered_order(delivered_at=clock() - timedelta(days=3))
            await CreateReturnUseCase(uow, clock=clock)(
                CreateReturnDTO(order_id=claimed.id, customer_id=CUSTOMER_ID, reason="DEFECTIVE")
            )

        assert await CompleteDeliveredOrdersUseCase(uow, clock=clock)(limit=2) == 1
        assert await _status(uow, ready.id) == OrderStatus.COMPLETED
