from __future__ import annotations

from datetime import datetime, timezone

import pytest
from prometheus_client import CollectorRegistry

from nightly_digest.metrics.metrics import Metrics
from nightly_digest.retry import RetryingCaller
from nightly_digest.types import Document, SearchHit


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeSearch:
    """keyword -> list of rows, or an exception to raise."""

    def __init__(self, table: dict) -> None:
        self.table = table
        self.calls: list[tuple[str, int]] = []

    async def search(self, query: str, limit: int = 10) -> list[dict]:
        self.calls.append((query, limit))
        value = self.table.get(query, [])
        if isinstance(value, Exception):
            raise value
        return list(value)


class FakeReader:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.calls: list[str] = []

    async def read(self, url: str) -> dict:
        self.calls.append(url)
        if url in self.failing:
            raise RuntimeError(f"reader down for {url}")
        return {
            "url": url,
            "title": f"Full {url.rsplit('/', 1)[-1]}",
            "description": "",
            "content": f"Body of {url} about LLM agents.",
            "markdown": f"Body of {url} about LLM agents.",
            "images": [],
            "links": [],
            "published": "",
            "language": "en",
        }


class FakeLLM:
    def __init__(
        self,
        key_point_reply: str = "1. 第一点\n2. 第二点\n3. 第三点",
        fail_on: str | None = None,
        fail_key_points_for: str | None = None,
    ) -> None:
        self.key_point_reply = key_point_reply
        self.fail_on = fail_on
        self.fail_key_points_for = fail_key_points_for
        self.calls: list[str] = []

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int = 4000, temperature: float = 0.3) -> str:
        self.calls.append(user_prompt)
        if self.fail_on is not None and self.fail_on in user_prompt:
            raise RuntimeError("llm unavailable")
        if "关键要点" in user_prompt:
            if self.fail_key_points_for is not None and self.fail_key_points_for in user_prompt:
                raise RuntimeError("llm unavailable")
            return self.key_point_reply
        return "今日 AI 动态摘要"


class FakeChannel:
    def __init__(self, name: str, configured: bool = True, result: bool = True, raises: bool = False, healthy: bool = True) -> None:
        self.name = name
        self._configured = configured
        self.result = result
        self.raises = raises
        self.healthy = healthy
        self.sent: list = []

    @property
    def configured(self) -> bool:
        return self._configured

    async def send(self, report) -> bool:
        self.sent.append(report)
        if self.raises:
            raise RuntimeError(f"{self.name} exploded")
        return self.result

    async def health_check(self) -> bool:
        return self.healthy

    async def aclose(self) -> None:
        return None


def make_hit(url: str, published: datetime | None = None, title: str = "") -> SearchHit:
    return SearchHit(
        title=title or url.rsplit("/", 1)[-1],
        url=url,
        description="desc",
        snippet="snippet...",
        published_at=published,
        source="web",
    )


def make_document(url: str, error: str | None = None, title: str = "") -> Document:
    return Document(
        title=title or url.rsplit("/", 1)[-1],
        url=url,
        description="desc",
        snippet="snippet...",
        published_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
        source="web",
        content="" if error else f"content of {url}",
        fetch_error=error,
    )


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def caller(sleep_recorder: SleepRecorder) -> RetryingCaller:
    return RetryingCaller(max_attempts=3, base_delay_seconds=1.0, sleep=sleep_recorder)


@pytest.fixture
def metrics() -> Metrics:
    return Metrics(registry=CollectorRegistry())


@pytest.fixture
def fakes():
    class _Fakes:
        Search = FakeSearch
        Reader = FakeReader
        LLM = FakeLLM
        Channel = FakeChannel
        hit = staticmethod(make_hit)
        document = staticmethod(make_document)

    return _Fakes
