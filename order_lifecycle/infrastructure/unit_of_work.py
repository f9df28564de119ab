import logging
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_lifecycle.infrastructure.repositories import (
    SQLAlchemyOrderRepository,
    SQLAlchemyReturnRepository,
    SQLAlchemyDisputeRepository,
)

logger = logging.getLogger(__name__)


class UnitOfWork:
    """Фабрика транзакций: `async with uow() as tx` дает репозитории на одной сессии.

    Все агрегаты, измененные внутри блока, фиксируются одним tx.commit().
    Без commit или при исключении изменения откатываются.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        async with self._session_factory() as session:
            tx = _SessionTransaction(session)
            try:
                yield tx
            except Exception as e:
                logger.debug(f"Откат транзакции: {type(e).__name__}: {e}")
                await session.rollback()
                raise
            if not tx.committed:
                await session.rollback()


class _SessionTransaction:
    def __init__(self, session: AsyncSession):
        self._session = session
        self.committed = False
        self.orders = SQLAlchemyOrderRepository(session)
        self.returns = SQLAlchemyReturnRepository(session)
        self.disputes = SQLAlchemyDisputeRepository(session)

    async def commit(self):
        await self._session.commit()
        self.committed = True

    async def rollback(self):
        await self._session.rollback()
        self.committed = False
