from __future__ import annotations

import logging

import httpx

from nightly_digest.notify.render import render_slack_blocks
from nightly_digest.types import Report


logger = logging.getLogger(__name__)


SLACK_API_URL = "https://slack.com/api"
BOT_USERNAME = "AI 动态夜报机器人"


class SlackChannel:
    """Slack delivery via incoming webhook (preferred) or bot token."""

    name = "slack"

    def __init__(
        self,
        webhook_url: str = "",
        bot_token: str = "",
        channel: str = "#ai-news",
        timeout_seconds: float = 30.0,
        api_url: str = SLACK_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._webhook_url = webhook_url.strip()
        self._bot_token = bot_token.strip()
        self._channel = channel
        self._api_url = api_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)
        if not self.configured:
            logger.warning("slack not configured, slack notifications disabled")

    @property
    def configured(self) -> bool:
        return bool(self._webhook_url or self._bot_token)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _api(self, method: str, payload: dict | None = None) -> dict:
        resp = await self._client.post(
            f"{self._api_url}/{method}",
            json=payload or {},
            headers={"Authorization": f"Bearer {self._bot_token}"},
        )
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict) or not data.get("ok"):
            err = data.get("error") if isinstance(data, dict) else "unexpected payload"
            raise RuntimeError(f"slack {method} failed: {err}")
        return data

    async def _send_webhook(self, report: Report) -> bool:
        message = {
            "channel": self._channel,
            "username": BOT_USERNAME,
            "icon_emoji": ":robot_face:",
            "text": report.title,
            "blocks": render_slack_blocks(report),
        }
        try:
            resp = await self._client.post(self._webhook_url, json=message)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("slack webhook send failed err=%s", e)
            return False
        logger.info("slack webhook message sent")
        return True

    async def _send_bot(self, report: Report) -> bool:
        try:
            data = await self._api(
                "chat.postMessage",
                {
                    "channel": self._channel,
                    "text": report.title,
                    "blocks": render_slack_blocks(report),
                    "username": BOT_USERNAME,
                    "icon_emoji": ":robot_face:",
                },
            )
        except (httpx.HTTPError, ValueError, RuntimeError) as e:
            logger.error("slack bot send failed err=%s", e)
            return False
        logger.info("slack message sent ts=%s", data.get("ts"))
        return True

    async def send(self, report: Report) -> bool:
        if self._webhook_url:
            return await self._send_webhook(report)
        if self._bot_token:
            return await self._send_bot(report)
        logger.warning("slack not configured, skipping")
        return False

    async def health_check(self) -> bool:
        if self._bot_token:
            try:
                await self._api("auth.test")
            except (httpx.HTTPError, ValueError, RuntimeError) as e:
                logger.warning("slack health check failed err=%s", e)
                return False
            return True
        # webhook: configured counts as healthy
        return bool(self._webhook_url)
