import asyncio
import logging

from order_lifecycle.application.complete_orders import CompleteDeliveredOrdersUseCase
from order_lifecycle.config import settings
from order_lifecycle.database import AsyncSessionLocal
from order_lifecycle.infrastructure.unit_of_work import UnitOfWork

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def completion_worker():
    """Worker для завершения заказов после выплаты escrow"""
    logger.info("Completion worker запущен")

    while True:
        try:
            uow = UnitOfWork(AsyncSessionLocal)
            use_case = CompleteDeliveredOrdersUseCase(uow, settings.ESCROW_RELEASE_DELAY)

            completed = await use_case(limit=settings.COMPLETION_BATCH_SIZE)
            if completed:
                logger.info(f"Завершено {completed} заказов")

            await asyncio.sleep(settings.COMPLETION_SWEEP_INTERVAL)

        except Exception as e:
            logger.error(f"Ошибка в completion worker: {e}", exc_info=True)
            await asyncio.sleep(settings.COMPLETION_SWEEP_INTERVAL)


def run():
    asyncio.run(completion_worker())


if __name__ == "__main__":
    run()
