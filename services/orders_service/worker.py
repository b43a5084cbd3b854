"""ARQ worker for pending payment expiry."""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import get_logger
from libs.db.config import AsyncSessionLocal

logger = get_logger(__name__)


async def task_expire_pending_payments(ctx: dict):
    from services.orders_service.services.pending_payments import (
        expire_stale_payments,
    )

    logger.info("Running: expire_stale_payments")
    async with AsyncSessionLocal() as db:
        await expire_stale_payments(db)


class WorkerSettings:
    redis_settings = get_redis_settings()

    functions = [task_expire_pending_payments]

    cron_jobs = [
        cron(
            task_expire_pending_payments,
            minute={0, 15, 30, 45},
            run_at_startup=True,
        ),
    ]
