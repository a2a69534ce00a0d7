from __future__ import annotations

import asyncio
import logging

from nightly_digest.notify.channels import Channel
from nightly_digest.types import NotificationOutcome, Report


logger = logging.getLogger(__name__)


async def _send(channel: Channel, report: Report) -> bool:
    if not channel.configured:
        logger.info("channel %s not configured, skipped", channel.name)
        return False
    return bool(await channel.send(report))


async def dispatch(report: Report, channels: list[Channel]) -> list[NotificationOutcome]:
    """Send ``report`` to every channel concurrently.

    Each channel is isolated: an exception from one send is logged and turned
    into ``delivered=False`` for that channel only. No retries here.
    """
    if not channels:
        logger.warning("no notification channels")
        return []

    logger.info("dispatch start: %s channels", len(channels))
    settled = await asyncio.gather(*(_send(c, report) for c in channels), return_exceptions=True)

    outcomes: list[NotificationOutcome] = []
    for channel, result in zip(channels, settled):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            logger.error("channel %s send raised err=%r", channel.name, result)
            outcomes.append(NotificationOutcome(channel=channel.name, delivered=False))
            continue
        outcomes.append(NotificationOutcome(channel=channel.name, delivered=bool(result)))

    delivered = sum(1 for o in outcomes if o.delivered)
    logger.info("dispatch done: %s/%s channels delivered", delivered, len(outcomes))
    return outcomes
