from __future__ import annotations

from datetime import datetime, timezone

import pytest

from nightly_digest.notify.dispatcher import dispatch
from nightly_digest.types import NotificationOutcome, Report


REPORT = Report(
    title="AI 动态夜报 - 2026/10/18",
    body="body",
    generated_at=datetime(2026, 10, 18, tzinfo=timezone.utc),
    document_count=3,
)


@pytest.mark.asyncio
async def test_one_raising_channel_does_not_affect_others(fakes):
    feishu = fakes.Channel("feishu")
    slack = fakes.Channel("slack", raises=True)

    outcomes = await dispatch(REPORT, [feishu, slack])

    assert outcomes == [
        NotificationOutcome(channel="feishu", delivered=True),
        NotificationOutcome(channel="slack", delivered=False),
    ]
    assert feishu.sent == [REPORT]


@pytest.mark.asyncio
async def test_unconfigured_channel_is_not_contacted(fakes):
    telegram = fakes.Channel("telegram", configured=False)
    outcomes = await dispatch(REPORT, [telegram])
    assert outcomes == [NotificationOutcome(channel="telegram", delivered=False)]
    assert telegram.sent == []


@pytest.mark.asyncio
async def test_channel_reporting_failure(fakes):
    outcomes = await dispatch(REPORT, [fakes.Channel("slack", result=False), fakes.Channel("feishu")])
    assert [(o.channel, o.delivered) for o in outcomes] == [("slack", False), ("feishu", True)]


@pytest.mark.asyncio
async def test_no_channels():
    assert await dispatch(REPORT, []) == []
