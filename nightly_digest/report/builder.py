"""Report rendering.

Everything in this module is a pure function of its arguments: the same
template, summary, documents and timestamp always render the same bytes.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, tzinfo

from nightly_digest.types import Document, Report, Summary
from nightly_digest.utils import format_date, format_timestamp


_PLACEHOLDER_RE = re.compile(r"\{([a-z_]+)\}")

DEFAULT_TITLE = "AI 动态夜报 - {date}"
ERROR_TITLE = "❌ 数字员工系统错误报告"
TEST_TITLE_PREFIX = "🧪 "


@dataclass(frozen=True)
class ReportTemplate:
    title: str = DEFAULT_TITLE
    introduction: str | None = None
    summary: str | None = None
    key_points: str | None = None
    references: str | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "ReportTemplate":
        data = data or {}
        sections = data.get("sections") or {}
        return cls(
            title=str(data.get("title") or DEFAULT_TITLE),
            introduction=sections.get("introduction"),
            summary=sections.get("summary"),
            key_points=sections.get("key_points"),
            references=sections.get("references"),
        )


def fill(template: str, values: dict[str, str]) -> str:
    """Substitute ``{name}`` placeholders; unknown names are left untouched."""

    def _sub(m: re.Match) -> str:
        key = m.group(1)
        return values[key] if key in values else m.group(0)

    return _PLACEHOLDER_RE.sub(_sub, template)


def count_categories(documents: list[Document], categories: dict[str, list[str]]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for name, words in categories.items():
        needles = [w.lower() for w in words if w]
        n = 0
        for d in documents:
            haystack = f"{d.title}\n{d.description}\n{d.text}".lower()
            if any(w in haystack for w in needles):
                n += 1
        counts[name] = n
    return counts


def _localize(dt: datetime, tz: tzinfo | None) -> datetime:
    return dt.astimezone(tz) if tz is not None else dt


def render_links(documents: list[Document]) -> str:
    return "\n".join(f"- [{d.title or d.url}]({d.url})" for d in documents)


def render_key_points(summary: Summary, documents: list[Document]) -> str:
    blocks: list[str] = []
    for d in documents:
        points = summary.key_points.get(d.url) or []
        if not points:
            continue
        lines = [f"### {d.title or d.url}"]
        lines.extend(f"- {p}" for p in points)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_report(
    template: ReportTemplate,
    summary: Summary,
    documents: list[Document],
    generated_at: datetime,
    keywords: list[str],
    categories: dict[str, list[str]] | None = None,
    tz: tzinfo | None = None,
    kind: str = "digest",
) -> Report:
    local = _localize(generated_at, tz)
    values = {
        "date": format_date(local),
        "timestamp": format_timestamp(local),
        "keywords": ", ".join(keywords),
        "total_articles": str(len(documents)),
        "filtered_articles": str(len(documents)),
        "summary_content": summary.narrative,
    }

    parts: list[str] = []
    if template.introduction:
        parts.append(fill(template.introduction, values) + "\n\n")
    if template.summary and summary.narrative:
        parts.append(fill(template.summary, values) + "\n\n")
    if template.key_points and summary.key_points:
        parts.append(fill(template.key_points, {"key_points": render_key_points(summary, documents)}) + "\n\n")
    if template.references:
        parts.append(fill(template.references, {"links": render_links(documents)}) + "\n")

    title = fill(template.title, values)
    if kind == "test":
        title = TEST_TITLE_PREFIX + title

    return Report(
        title=title,
        body="".join(parts),
        generated_at=generated_at,
        document_count=len(documents),
        category_counts=count_categories(documents, categories) if categories else None,
        kind=kind,
        summary=summary.narrative,
    )


def build_error_report(error: str, context: dict, generated_at: datetime, tz: tzinfo | None = None) -> Report:
    ctx = dict(context)
    ctx.setdefault("timestamp", format_timestamp(_localize(generated_at, tz)))
    body = f"错误信息: {error}\n\n上下文: {json.dumps(ctx, ensure_ascii=False, indent=2, sort_keys=True)}"
    return Report(
        title=ERROR_TITLE,
        body=body,
        generated_at=generated_at,
        document_count=0,
        kind="error",
        summary=error,
    )
