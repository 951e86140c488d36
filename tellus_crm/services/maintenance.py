import asyncio
import logging
from sqlalchemy.exc import SQLAlchemyError
from tellus_crm.database import AsyncSessionLocal
from tellus_crm.services.link_service import LinkLifecycleService

logger = logging.getLogger(__name__)


async def purge_expired_links() -> int:
    """Delete expired and inactive links of both kinds in a fresh session."""
    async with AsyncSessionLocal() as db:
        return await LinkLifecycleService.purge_all(db)


async def run_link_purge_loop(interval_minutes: int) -> None:
    """
    Purge expired links now and then every `interval_minutes`, until cancelled.

    A failed run is logged and retried at the next interval.
    """
    while True:
        try:
            await purge_expired_links()
        except SQLAlchemyError:
            logger.exception("Periodic link purge failed")
        await asyncio.sleep(interval_minutes * 60)
