from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from urllib.parse import urlparse


_MIN_DT = datetime.min.replace(tzinfo=timezone.utc)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_url(url: str | None) -> bool:
    if not url:
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def parse_datetime(value) -> datetime | None:
    """Best-effort parse of the date strings returned by search/reader APIs.

    Accepts ISO 8601 (with or without a trailing ``Z``) and RFC 2822 dates.
    Naive values are assumed to be UTC so that all results compare.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value or "").strip()
        if not text:
            return None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                dt = parsedate_to_datetime(text)
            except (TypeError, ValueError, IndexError):
                return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def recency_key(dt: datetime | None) -> datetime:
    return dt if dt is not None else _MIN_DT


def collapse_ws(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 1] + "…"


def redact_detail(detail: str, max_chars: int = 240) -> str:
    return truncate(detail.strip(), max_chars)


def format_date(dt: datetime) -> str:
    return dt.strftime("%Y/%m/%d")


def format_timestamp(dt: datetime) -> str:
    return dt.strftime("%Y/%m/%d %H:%M:%S")
