from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging

from order_lifecycle.database import engine
from order_lifecycle.infrastructure.db_schema import metadata
from order_lifecycle.presentation.api import router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    # Схема для локального запуска; в проде используется alembic upgrade head
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Таблицы созданы")

    yield

    logger.info("Приложение останавливается...")
    await engine.dispose()

app = FastAPI(
    title="Order Lifecycle Service",
    description="Заказы, escrow, возвраты и споры",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")


@app.get("/health")
async def health():
    return {"status": "healthy"}
