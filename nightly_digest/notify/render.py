from __future__ import annotations

import html

from nightly_digest.types import Report
from nightly_digest.utils import format_timestamp, truncate


def _category_lines(report: Report, bullet: str = "•") -> list[str]:
    if not report.category_counts:
        return []
    return [f"{bullet} {name}: {count} 篇" for name, count in report.category_counts.items()]


def _summary_section(report: Report) -> str:
    return report.summary.strip() or "暂无摘要"


def render_plain(report: Report) -> str:
    lines = [
        report.title,
        "",
        f"📅 生成时间: {format_timestamp(report.generated_at)}",
        f"📊 文章数量: {report.document_count} 篇",
        "",
        "---",
        "",
        report.body.rstrip(),
        "",
        "---",
        "",
    ]
    categories = _category_lines(report)
    if categories:
        lines.append("📈 分类统计:")
        lines.extend(categories)
        lines.append("")
    if report.kind != "error":
        lines.append("💡 完整报告已保存到本地文件")
    return "\n".join(lines)


def render_slack_blocks(report: Report) -> list[dict]:
    blocks: list[dict] = [
        {"type": "header", "text": {"type": "plain_text", "text": truncate(report.title, 150)}},
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*生成时间:*\n{format_timestamp(report.generated_at)}"},
                {"type": "mrkdwn", "text": f"*文章数量:*\n{report.document_count} 篇"},
            ],
        },
        {"type": "divider"},
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*核心要点:*\n{truncate(_summary_section(report), 500)}"},
        },
    ]

    categories = _category_lines(report)
    if categories:
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": "*分类统计:*\n" + "\n".join(categories)}})
    return blocks


def render_telegram_html(report: Report, max_chars: int = 3800) -> str:
    head: list[str] = [
        f"<b>{html.escape(report.title)}</b>",
        f"生成时间：{format_timestamp(report.generated_at)}",
        f"文章数量：{report.document_count} 篇",
        "",
    ]
    tail: list[str] = []
    categories = _category_lines(report, bullet="-")
    if categories:
        tail.append("<b>分类统计</b>")
        tail.extend(html.escape(c) for c in categories)

    # truncate before escaping so an entity is never cut in half; escaping
    # can grow the text, so shrink the raw budget until the result fits
    room = max(0, max_chars - sum(len(x) + 1 for x in head + tail))
    raw = report.body.rstrip()
    budget = room
    body = html.escape(truncate(raw, budget)) if budget > 0 else ""
    while len(body) > room:
        budget -= len(body) - room
        body = html.escape(truncate(raw, budget)) if budget > 0 else ""
    return "\n".join(head + [body] + tail)
