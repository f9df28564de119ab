from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from order_lifecycle.config import settings

engine = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
