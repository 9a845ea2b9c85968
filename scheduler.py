import asyncio
import logging
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import session_scope
from services import FxLoaderService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def local_yesterday(timezone: str) -> date:
    return datetime.now(ZoneInfo(timezone)).date() - timedelta(days=1)


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.timezone = settings.timezone
        self.scheduler = AsyncIOScheduler(timezone=settings.timezone)

    async def _run_job(self, source: str = "manual") -> None:
        day = local_yesterday(self.timezone)
        logger.info(f"scheduler_run: source={source} day={day}")
        try:
            async with session_scope() as session:
                remaining = await FxLoaderService(session).load_missing_rates_for_day(
                    day
                )
        except Exception:
            logger.exception(f"scheduler_run: source={source} day={day} failed")
            return
        logger.info(
            f"scheduler_run: source={source} day={day} missing_codes={len(remaining)}"
        )

    async def start(self) -> None:
        await self._run_job("startup")

        trigger = CronTrigger(hour=3, minute=15)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["daily_03:15"],
            id="fx_rates_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        trigger = IntervalTrigger(hours=1)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["hourly_safety_net"],
            id="fx_rates_hourly_safety",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info("Scheduler started with daily 03:15 and hourly safety net")

    async def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # AsyncIOScheduler may queue the shutdown on the loop; let it run.
            await asyncio.sleep(0)
            logger.info("Scheduler stopped")


async def _serve() -> None:
    manager = SchedulerManager()
    await manager.start()
    try:
        await asyncio.Event().wait()
    finally:
        await manager.stop()


def main() -> None:
    asyncio.run(_serve())


if __name__ == "__main__":
    main()
