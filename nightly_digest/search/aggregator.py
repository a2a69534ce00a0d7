from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from nightly_digest.errors import StageError
from nightly_digest.retry import RetryingCaller
from nightly_digest.types import SearchHit
from nightly_digest.utils import collapse_ws, parse_datetime, recency_key


logger = logging.getLogger(__name__)


SNIPPET_CHARS = 200


class SearchBackend(Protocol):
    async def search(self, query: str, limit: int = 10) -> list[dict]: ...


def to_hit(row: dict) -> SearchHit:
    content = str(row.get("content") or "")
    snippet = content[:SNIPPET_CHARS] + "..." if content else ""
    return SearchHit(
        title=collapse_ws(str(row.get("title") or "")),
        url=str(row.get("url") or "").strip(),
        description=collapse_ws(str(row.get("description") or "")),
        snippet=snippet,
        published_at=parse_datetime(row.get("published")),
        source=str(row.get("source") or ""),
    )


def merge_hits(batches: list[list[SearchHit]], max_total: int | None = None) -> list[SearchHit]:
    """De-duplicate by url (first wins), newest first, then truncate.

    ``sorted`` is stable, so hits with equal dates keep their merge order.
    """
    seen: set[str] = set()
    unique: list[SearchHit] = []
    for batch in batches:
        for hit in batch:
            if hit.url in seen:
                continue
            seen.add(hit.url)
            unique.append(hit)

    ranked = sorted(unique, key=lambda h: recency_key(h.published_at), reverse=True)
    if max_total is not None:
        ranked = ranked[: max(0, max_total)]
    return ranked


class SearchAggregator:
    def __init__(self, backend: SearchBackend, caller: RetryingCaller | None = None) -> None:
        self._backend = backend
        self._caller = caller

    async def _search_one(self, keyword: str, limit: int) -> list[SearchHit]:
        if self._caller is not None:
            rows = await self._caller.call(
                lambda: self._backend.search(keyword, limit),
                label=f"search {keyword!r}",
            )
        else:
            rows = await self._backend.search(keyword, limit)
        return [to_hit(r) for r in rows[:limit]]

    async def search(
        self,
        keywords: list[str],
        results_per_keyword: int,
        max_total: int | None = None,
    ) -> list[SearchHit]:
        if not keywords:
            logger.warning("no keywords configured")
            return []

        logger.info("batch search: %s keywords, %s per keyword", len(keywords), results_per_keyword)
        outcomes = await asyncio.gather(
            *(self._search_one(kw, results_per_keyword) for kw in keywords),
            return_exceptions=True,
        )

        batches: list[list[SearchHit]] = []
        failed = 0
        for keyword, outcome in zip(keywords, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                failed += 1
                logger.error("keyword search failed keyword=%r err=%s", keyword, outcome)
                continue
            logger.info("keyword search ok keyword=%r hits=%s", keyword, len(outcome))
            batches.append(outcome)

        if failed == len(keywords):
            raise StageError("search", f"all {failed} keyword searches failed")

        hits = merge_hits(batches, max_total)
        logger.info("batch search done: %s unique hits (%s keywords failed)", len(hits), failed)
        return hits
