from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from nightly_digest.errors import is_retryable


logger = logging.getLogger(__name__)


T = TypeVar("T")


class wait_doubling(wait_base):
    """Wait ``base * 2**k`` seconds before attempt ``k`` (k >= 2)."""

    def __init__(self, base_seconds: float) -> None:
        self.base_seconds = float(base_seconds)

    def __call__(self, retry_state: RetryCallState) -> float:
        next_attempt = retry_state.attempt_number + 1
        return self.base_seconds * (2**next_attempt)


class RetryingCaller:
    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._max_attempts = max_attempts
        self._base_delay = base_delay_seconds
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def call(
        self,
        action: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
        label: str = "",
    ) -> T:
        attempts = max_attempts if max_attempts is not None else self._max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        def _log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "%s attempt %s/%s failed, retrying in %.1fs err=%s",
                label or "call",
                retry_state.attempt_number,
                attempts,
                retry_state.next_action.sleep if retry_state.next_action else 0.0,
                exc,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_doubling(self._base_delay),
            retry=retry_if_exception(is_retryable),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await action()
        except Exception as e:
            logger.error("%s failed after retries err=%s", label or "call", e)
            raise
        raise RuntimeError("retry loop exited without result")  # pragma: no cover
