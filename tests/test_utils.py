from __future__ import annotations

from datetime import datetime, timezone

import pytest

from nightly_digest.errors import NonRetryableError, UpstreamError, is_retryable
from nightly_digest.utils import is_valid_url, parse_datetime, recency_key, truncate


@pytest.mark.parametrize(
    "url, ok",
    [
        ("https://example.com/a", True),
        ("http://example.com", True),
        ("ftp://example.com", False),
        ("example.com", False),
        ("", False),
        (None, False),
    ],
)
def test_is_valid_url(url, ok):
    assert is_valid_url(url) is ok


def test_parse_datetime_formats():
    utc = datetime(2026, 10, 1, 8, tzinfo=timezone.utc)
    assert parse_datetime("2026-10-01T08:00:00Z") == utc
    assert parse_datetime("Thu, 01 Oct 2026 08:00:00 GMT") == utc
    assert parse_datetime("2026-10-01T08:00:00") == utc
    assert parse_datetime("yesterday") is None
    assert parse_datetime("") is None


def test_recency_key_puts_undated_last():
    assert recency_key(None) < recency_key(datetime(1970, 1, 1, tzinfo=timezone.utc))


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("abcdef", 4) == "abc…"


def test_retry_classification():
    assert is_retryable(UpstreamError("TIMEOUT", "slow"))
    assert is_retryable(RuntimeError("anything else"))
    assert not is_retryable(NonRetryableError("INVALID_URL", "x"))
