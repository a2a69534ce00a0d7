from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

from nightly_digest.utils import now_utc


logger = logging.getLogger(__name__)


HealthCheck = Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class HealthState:
    healthy: bool
    backends: dict[str, bool]
    channels: dict[str, bool]
    scheduler: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=now_utc)

    def as_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "backends": dict(self.backends),
            "channels": dict(self.channels),
            "scheduler": dict(self.scheduler),
            "timestamp": self.timestamp.isoformat(),
        }


def compose_health(backends: dict[str, bool], channels: dict[str, bool]) -> bool:
    """Every content backend must be up; one working channel is enough."""
    if not backends:
        return False
    return all(backends.values()) and any(channels.values())


async def run_checks(checks: dict[str, HealthCheck]) -> dict[str, bool]:
    names = list(checks)
    settled = await asyncio.gather(*(checks[n]() for n in names), return_exceptions=True)
    out: dict[str, bool] = {}
    for name, result in zip(names, settled):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            logger.warning("health check %s raised err=%r", name, result)
            out[name] = False
        else:
            out[name] = bool(result)
    return out
