from abc import ABC, abstractmethod
from typing import Optional, List
from pydantic import BaseModel

from order_lifecycle.domain.disputes import Dispute
from order_lifecycle.domain.models import Order
from order_lifecycle.domain.returns import ReturnRequest
from order_lifecycle.domain.specifications import Specification


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_for_update(self, order_id: str) -> Optional[Order]:
        """Чтение с блокировкой строки до конца транзакции (SELECT ... FOR UPDATE)."""
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def save(self, order: Order) -> None:
        """Compare-and-set по версии: ConcurrentUpdateError, если версия устарела."""
        pass

    @abstractmethod
    async def find(self, spec: Specification, limit: int = 50, offset: int = 0) -> List[Order]:
        pass


class ReturnRepository(ABC):
    @abstractmethod
    async def get_by_id(self, return_id: str) -> Optional[ReturnRequest]:
        pass

    @abstractmethod
    async def get_active_by_order_id(self, order_id: str) -> Optional[ReturnRequest]:
        pass

    @abstractmethod
    async def create(self, return_request: ReturnRequest) -> None:
        pass

    @abstractmethod
    async def save(self, return_request: ReturnRequest) -> None:
        pass

    @abstractmethod
    async def list_by_creator(self, creator_id: str, limit: int = 50, offset: int = 0) -> List[ReturnRequest]:
        pass

    @abstractmethod
    async def list_by_customer(self, customer_id: str, limit: int = 50, offset: int = 0) -> List[ReturnRequest]:
        pass


class DisputeRepository(ABC):
    @abstractmethod
    async def get_by_id(self, dispute_id: str) -> Optional[Dispute]:
        pass

    @abstractmethod
    async def get_active_by_order_id(self, order_id: str) -> Optional[Dispute]:
        pass

    @abstractmethod
    async def create(self, dispute: Dispute) -> None:
        pass

    @abstractmethod
    async def save(self, dispute: Dispute) -> None:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @property
    @abstractmethod
    def returns(self) -> ReturnRepository:
        pass

    @property
    @abstractmethod
    def disputes(self) -> DisputeRepository:
        pass

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class RefundConfirmation(BaseModel):
    id: str
    amount: int
    status: str


class PaymentsService(ABC):
    @abstractmethod
    async def refund(self, payment_reference: str, amount: int, idempotency_key: str) -> RefundConfirmation:
        """Возврат средств через платежный сервис. Ошибки -> PaymentServiceError."""
        pass
