from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Protocol

from nightly_digest.retry import RetryingCaller
from nightly_digest.types import Document, SearchHit
from nightly_digest.utils import is_valid_url, parse_datetime, redact_detail, truncate
from nightly_digest.workers import run_bounded


logger = logging.getLogger(__name__)


class ReaderBackend(Protocol):
    async def read(self, url: str) -> dict: ...


def merge_document(hit: SearchHit, data: dict) -> Document:
    """Enrich a hit with reader output; non-empty fetched fields win."""
    content = str(data.get("content") or "")
    return Document(
        title=str(data.get("title") or "") or hit.title,
        url=hit.url,
        description=str(data.get("description") or "") or hit.description,
        snippet=hit.snippet,
        published_at=parse_datetime(data.get("published")) or hit.published_at,
        source=hit.source,
        content=content,
        markdown=str(data.get("markdown") or "") or content,
        links=data.get("links") or [],
        images=data.get("images") or [],
        language=str(data.get("language") or ""),
    )


def failed_document(hit: SearchHit, error: str) -> Document:
    return Document(
        title=hit.title,
        url=hit.url,
        description=hit.description,
        snippet=hit.snippet,
        published_at=hit.published_at,
        source=hit.source,
        fetch_error=redact_detail(error) or "fetch failed",
    )


class ContentFetcher:
    def __init__(
        self,
        reader: ReaderBackend,
        caller: RetryingCaller,
        concurrency: int = 3,
        jitter_seconds: tuple[float, float] = (0.5, 1.5),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._reader = reader
        self._caller = caller
        self._concurrency = concurrency
        low, high = jitter_seconds
        self._jitter = (max(0.0, float(low)), max(0.0, float(high)))
        self._sleep = sleep

    def _jitter_delay(self) -> float:
        low, high = self._jitter
        if high <= low:
            return low
        return random.uniform(low, high)

    async def _fetch_one(self, hit: SearchHit) -> Document:
        delay = self._jitter_delay()
        if delay > 0:
            await self._sleep(delay)
        try:
            data = await self._caller.call(lambda: self._reader.read(hit.url), label=f"read {truncate(hit.url, 80)}")
        except Exception as e:
            logger.warning("fetch failed url=%s err=%s", truncate(hit.url, 120), e)
            return failed_document(hit, str(e))
        return merge_document(hit, data)

    async def fetch(self, hits: list[SearchHit], concurrency: int | None = None) -> list[Document]:
        """Fetch full content for every hit with a valid url.

        Failed fetches come back as documents with ``fetch_error`` set, so the
        output has one document per valid input hit, in input order.
        """
        valid = [h for h in hits if is_valid_url(h.url)]
        skipped = len(hits) - len(valid)
        if skipped:
            logger.warning("skipping %s hits with invalid urls", skipped)
        if not valid:
            logger.warning("no hits to fetch")
            return []

        workers = concurrency if concurrency is not None else self._concurrency
        logger.info("fetch start: %s urls, concurrency=%s", len(valid), workers)
        results = await run_bounded(valid, self._fetch_one, workers)

        by_url: dict[str, Document] = {}
        for r in results:
            hit: SearchHit = r.item
            by_url[hit.url] = r.value if r.ok and r.value is not None else failed_document(hit, r.error or "")

        documents = [by_url[h.url] for h in valid]
        failed = sum(1 for d in documents if not d.ok)
        logger.info("fetch done: %s ok, %s failed", len(documents) - failed, failed)
        return documents
