"""
APScheduler jobs for waiting-list housekeeping:

  - Every WAITING_LIST_EXPIRY_INTERVAL_MINUTES: return offers nobody answered
    within WAITING_LIST_OFFER_TTL_HOURS to the queue
"""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from app.core.config import get_settings
from app.services.db import db_session
from app.services.waiting_list import WaitingListService
from app.services.whatsapp import WhatsAppService

_scheduler: AsyncIOScheduler | None = None


async def _expire_stale_offers() -> None:
    with db_session() as session:
        service = WaitingListService(session=session, messenger=WhatsAppService(session))
        expired = service.expire_stale_offers()
    if expired:
        logger.info("Returned {count} stale waiting list offers to the queue", count=expired)


def get_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        settings = get_settings()
        _scheduler = AsyncIOScheduler(timezone=settings.timezone)
        _scheduler.add_job(
            _expire_stale_offers,
            IntervalTrigger(minutes=settings.waiting_list_expiry_interval_minutes),
            id="expire_waiting_list_offers",
            replace_existing=True,
        )
    return _scheduler
