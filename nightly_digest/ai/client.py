from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from nightly_digest.errors import ERROR_BAD_RESPONSE, ERROR_HTTP, ERROR_TIMEOUT, UpstreamError
from nightly_digest.upstream import raise_for_upstream_status
from nightly_digest.utils import redact_detail


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AIConfig:
    base_url: str
    api_key: str
    model: str
    timeout_seconds: int


def _extract_content(data: dict) -> str:
    choice = (data.get("choices") or [{}])[0] or {}
    content = (choice.get("message") or {}).get("content") or (choice.get("delta") or {}).get("content") or ""
    return str(content)


class OpenAICompatClient:
    """Chat-completions client (DeepSeek and other OpenAI-compatible APIs).

    A single ``complete`` call makes exactly one HTTP request; retries are the
    caller's responsibility.
    """

    def __init__(self, cfg: AIConfig, transport: httpx.AsyncBaseTransport | None = None):
        self._cfg = cfg
        self._client = httpx.AsyncClient(
            base_url=cfg.base_url.rstrip("/"),
            timeout=httpx.Timeout(cfg.timeout_seconds),
            headers={
                "Authorization": f"Bearer {cfg.api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 4000,
        temperature: float = 0.3,
    ) -> str:
        payload = {
            "model": self._cfg.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }

        try:
            resp = await self._client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            raise UpstreamError(ERROR_TIMEOUT, redact_detail(str(e) or "ai request timed out")) from e
        except httpx.TransportError as e:
            raise UpstreamError(ERROR_HTTP, redact_detail(str(e))) from e

        raise_for_upstream_status(resp, "chat completion")
        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamError(ERROR_BAD_RESPONSE, "chat completion: invalid json") from e

        content = _extract_content(data if isinstance(data, dict) else {})
        if not content.strip():
            raise UpstreamError(ERROR_BAD_RESPONSE, "chat completion: empty content")

        usage = data.get("usage") or {}
        if isinstance(usage, dict):
            logger.debug(
                "ai usage prompt_tokens=%s completion_tokens=%s",
                usage.get("prompt_tokens"),
                usage.get("completion_tokens"),
            )
        return content

    async def health_check(self) -> bool:
        try:
            await self.complete("You are a health probe.", '你好，请回复"OK"', max_tokens=10)
        except UpstreamError as e:
            logger.warning("ai health check failed err=%s", e)
            return False
        logger.info("ai health check ok")
        return True
