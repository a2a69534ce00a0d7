from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

from croniter import croniter


logger = logging.getLogger(__name__)


class CronSchedule:
    """A cron expression evaluated in a fixed timezone."""

    def __init__(self, expression: str, timezone: str = "Asia/Shanghai") -> None:
        if not croniter.is_valid(expression):
            raise ValueError(f"invalid cron expression: {expression!r}")
        self.expression = expression
        self.timezone = timezone
        self.tz = ZoneInfo(timezone)

    def next_fire(self, after: datetime | None = None) -> datetime:
        base = (after or datetime.now(self.tz)).astimezone(self.tz)
        return croniter(self.expression, base).get_next(datetime)


async def serve(
    schedule: CronSchedule,
    job: Callable[[], Awaitable[object]],
    stop: asyncio.Event,
) -> None:
    """Fire ``job`` on every cron tick until ``stop`` is set."""
    logger.info("scheduler started: %s (%s)", schedule.expression, schedule.timezone)
    while not stop.is_set():
        now = datetime.now(schedule.tz)
        next_at = schedule.next_fire(now)
        wait_s = max(0.0, (next_at - now).total_seconds())
        logger.info("next run at %s (in %.0fs)", next_at.isoformat(), wait_s)
        try:
            await asyncio.wait_for(stop.wait(), timeout=wait_s)
            break
        except asyncio.TimeoutError:
            pass

        try:
            await job()
        except Exception:
            logger.exception("scheduled run failed")
    logger.info("scheduler stopped")
