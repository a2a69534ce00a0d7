from __future__ import annotations

import logging

import httpx

from nightly_digest.notify.render import render_plain
from nightly_digest.types import Report


logger = logging.getLogger(__name__)


class FeishuChannel:
    """Feishu custom-bot webhook."""

    name = "feishu"

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._webhook_url = webhook_url.strip()
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)
        if not self._webhook_url:
            logger.warning("feishu webhook not configured, feishu notifications disabled")

    @property
    def configured(self) -> bool:
        return bool(self._webhook_url)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(self, report: Report) -> bool:
        if not self.configured:
            logger.warning("feishu not configured, skipping")
            return False

        message = {"msg_type": "text", "content": {"text": render_plain(report)}}
        try:
            resp = await self._client.post(self._webhook_url, json=message)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("feishu send failed err=%s", e)
            return False

        code = data.get("code", data.get("StatusCode", 0)) if isinstance(data, dict) else 0
        if code not in (0, None):
            logger.error("feishu rejected message code=%s msg=%s", code, data.get("msg"))
            return False
        logger.info("feishu message sent")
        return True

    async def health_check(self) -> bool:
        # A webhook has no side-effect-free probe; configured counts as healthy.
        return self.configured
