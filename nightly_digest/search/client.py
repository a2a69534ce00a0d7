from __future__ import annotations

import logging

import httpx

from nightly_digest.errors import (
    ERROR_BAD_RESPONSE,
    ERROR_HTTP,
    ERROR_INVALID_URL,
    ERROR_TIMEOUT,
    NonRetryableError,
    UpstreamError,
)
from nightly_digest.upstream import raise_for_upstream_status
from nightly_digest.utils import is_valid_url, redact_detail, truncate


logger = logging.getLogger(__name__)


HEALTH_PROBE_URL = "https://example.com"


class JinaClient:
    """Search (s.jina.ai) and Reader (r.jina.ai) backends over one API key."""

    def __init__(
        self,
        api_key: str,
        search_url: str = "https://s.jina.ai",
        reader_url: str = "https://r.jina.ai",
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        timeout = httpx.Timeout(timeout_seconds)
        self._search = httpx.AsyncClient(
            base_url=search_url.rstrip("/"), timeout=timeout, headers=headers, transport=transport
        )
        self._reader = httpx.AsyncClient(
            base_url=reader_url.rstrip("/"), timeout=timeout, headers=headers, transport=transport
        )
        if api_key:
            logger.debug("jina api key: %s...", api_key[:8])
        else:
            logger.warning("JINA_API_KEY is not set")

    async def aclose(self) -> None:
        await self._search.aclose()
        await self._reader.aclose()

    async def _post(self, client: httpx.AsyncClient, payload: dict, headers: dict, what: str) -> dict:
        try:
            resp = await client.post("/", json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise UpstreamError(ERROR_TIMEOUT, redact_detail(f"{what}: {e}")) from e
        except httpx.TransportError as e:
            raise UpstreamError(ERROR_HTTP, redact_detail(f"{what}: {e}")) from e

        raise_for_upstream_status(resp, what)
        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamError(ERROR_BAD_RESPONSE, redact_detail(f"{what}: invalid json")) from e
        if not isinstance(data, dict):
            raise UpstreamError(ERROR_BAD_RESPONSE, f"{what}: unexpected payload")
        return data

    async def search(self, query: str, limit: int = 10) -> list[dict]:
        logger.info("search start query=%r limit=%s", query, limit)
        data = await self._post(
            self._search,
            {"q": query, "num": limit, "gl": "US"},
            {
                "X-No-Cache": "true",
                "X-With-Links-Summary": "true",
                "X-Engine": "direct",
            },
            what=f"search {query!r}",
        )
        rows = data.get("data") or []
        if not isinstance(rows, list):
            rows = []

        results: list[dict] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            results.append(
                {
                    "title": str(row.get("title") or ""),
                    "url": str(row.get("url") or ""),
                    "description": str(row.get("description") or ""),
                    "content": str(row.get("content") or ""),
                    "published": str(row.get("published") or row.get("date") or ""),
                    "source": str(row.get("source") or ""),
                }
            )
        logger.info("search done query=%r results=%s", query, len(results))
        return results

    async def read(self, url: str) -> dict:
        if not is_valid_url(url):
            raise NonRetryableError(ERROR_INVALID_URL, truncate(str(url), 200))

        logger.info("read start url=%s", truncate(url, 120))
        data = await self._post(
            self._reader,
            {"url": url},
            {
                "X-No-Cache": "true",
                "X-With-Links-Summary": "true",
                "X-With-Images-Summary": "true",
                "X-Proxy": "auto",
                "X-Return-Format": "markdown",
            },
            what=f"read {truncate(url, 120)}",
        )
        content = data.get("data") or {}
        if not isinstance(content, dict):
            content = {}

        text = str(content.get("content") or "")
        return {
            "url": url,
            "title": str(content.get("title") or ""),
            "description": str(content.get("description") or ""),
            "content": text,
            "markdown": text,
            "images": content.get("images") or [],
            "links": content.get("links") or [],
            "published": str(content.get("publishedTime") or content.get("published") or ""),
            "language": str(content.get("language") or ""),
        }

    async def health_check(self) -> bool:
        try:
            await self._post(self._reader, {"url": HEALTH_PROBE_URL}, {"X-No-Cache": "true"}, what="health")
        except UpstreamError as e:
            logger.warning("jina health check failed err=%s", e)
            return False
        logger.info("jina health check ok")
        return True
