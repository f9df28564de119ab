"""Общие фикстуры: in-memory sqlite, UnitOfWork, фейковый платежный сервис и фабрики заказов."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from order_lifecycle.application.create_order import (
    CreateOrderDTO,
    CreateOrderUseCase,
    OrderItemDTO,
    ShippingAddressDTO,
)
from order_lifecycle.application.interfaces import PaymentsService, RefundConfirmation
from order_lifecycle.domain.exceptions import PaymentServiceError
from order_lifecycle.domain.models import Order, OrderItem, OrderStatus, ShippingAddress
from order_lifecycle.infrastructure.db_schema import metadata
from order_lifecycle.infrastructure.repositories import SQLAlchemyOrderRepository
from order_lifecycle.infrastructure.unit_of_work import UnitOfWork

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

CUSTOMER_ID = "cust-001"
CREATOR_ID = "creator-001"


class FakeClock:
    """Управляемые часы: тест сдвигает время через advance()"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakePaymentsService(PaymentsService):
    def __init__(self):
        self.calls: list[dict] = []
        self.fail_with: Exception | None = None

    async def refund(self, payment_reference: str, amount: int, idempotency_key: str) -> RefundConfirmation:
        self.calls.append({
            "payment_reference": payment_reference,
            "amount": amount,
            "idempotency_key": idempotency_key,
        })
        if self.fail_with is not None:
            raise self.fail_with
        return RefundConfirmation(id=f"re_{len(self.calls)}", amount=amount, status="succeeded")


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def uow(session_factory):
    return UnitOfWork(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def payments():
    return FakePaymentsService()


@pytest.fixture
def lock_log(monkeypatch, payments):
    """Порядок событий: блокировки строк заказов и вызовы платежного сервиса"""
    events = []
    get_for_update = SQLAlchemyOrderRepository.get_for_update
    refund = payments.refund

    async def locking_get(repo, order_id):
        events.append(("lock", order_id))
        return await get_for_update(repo, order_id)

    async def logging_refund(**kwargs):
        events.append(("refund", kwargs["idempotency_key"]))
        return await refund(**kwargs)

    monkeypatch.setattr(SQLAlchemyOrderRepository, "get_for_update", locking_get)
    monkeypatch.setattr(payments, "refund", logging_refund)
    return events


@pytest.fixture
def payment_failure():
    return PaymentServiceError("Payment service не ответил вовремя")


def make_order(status: OrderStatus = OrderStatus.PENDING, now: datetime = NOW, **overrides) -> Order:
    """Заказ в памяти в нужном статусе, без прохождения переходов"""
    items = [
        OrderItem(id=str(uuid.uuid4()), product_id="prod-1", name="Футболка", unit_price=1500, quantity=2),
        OrderItem(id=str(uuid.uuid4()), product_id="prod-2", variant_id="xl", name="Худи", unit_price=4000, quantity=1),
    ]
    order = Order.create(
        customer_id=CUSTOMER_ID,
        customer_name="Иван Петров",
        customer_email="ivan@example.com",
        creator_id=CREATOR_ID,
        items=items,
        shipping_address=ShippingAddress(street="ул. Ленина, 1", city="Москва", postal_code="101000", country="RU"),
        now=now,
    )
    order.status = status
    if status not in (OrderStatus.PENDING, OrderStatus.CANCELED):
        order.payment_reference = "pay_123"
    for field, value in overrides.items():
        setattr(order, field, value)
    return order


def order_dto(**overrides) -> CreateOrderDTO:
    data = dict(
        customer_id=CUSTOMER_ID,
        customer_name="Иван Петров",
        customer_email="ivan@example.com",
        creator_id=CREATOR_ID,
        items=[
            OrderItemDTO(product_id="prod-1", name="Футболка", unit_price=1500, quantity=2),
            OrderItemDTO(product_id="prod-2", variant_id="xl", name="Худи", unit_price=4000, quantity=1),
        ],
        shipping_address=ShippingAddressDTO(
            street="ул. Ленина, 1", city="Москва", postal_code="101000", country="RU"
        ),
    )
    data.update(overrides)
    return CreateOrderDTO(**data)


@pytest.fixture
def create_order(uow, clock):
    async def _create(**overrides) -> Order:
        return await CreateOrderUseCase(uow, clock)(order_dto(**overrides))
    return _create


@pytest.fixture
def store_order(uow):
    """Сохраняет заказ в нужном статусе напрямую через репозиторий"""
    async def _store(status: OrderStatus = OrderStatus.PENDING, **overrides) -> Order:
        order = make_order(status, **overrides)
        async with uow() as tx:
            await tx.orders.create(order)
            await tx.commit()
        return order
    return _store


@pytest.fixture
def delivered_order(store_order, clock):
    async def _delivered(delivered_at: datetime | None = None) -> Order:
        return await store_order(OrderStatus.DELIVERED, delivered_at=delivered_at or clock())
    return _delivered
