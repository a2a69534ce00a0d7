from __future__ import annotations

import json
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from nightly_digest.report.builder import (
    ERROR_TITLE,
    ReportTemplate,
    build_error_report,
    build_report,
    count_categories,
    fill,
)
from nightly_digest.report.writer import ReportWriter
from nightly_digest.types import Summary


GENERATED = datetime(2026, 10, 17, 23, 0, tzinfo=timezone.utc)

TEMPLATE = ReportTemplate.from_dict(
    {
        "title": "AI 动态夜报 - {date}",
        "sections": {
            "introduction": "生成于 {timestamp}，关键词 {keywords}，共 {total_articles} 篇",
            "summary": "## 摘要\n{summary_content}",
            "key_points": "## 要点\n{key_points}",
            "references": "## 参考\n{links}",
        },
    }
)


def _summary(docs) -> Summary:
    return Summary(narrative="摘要正文", key_points={d.url: ["要点一", "要点二"] for d in docs})


def test_fill_leaves_unknown_placeholders():
    assert fill("{a} and {missing}", {"a": "x"}) == "x and {missing}"


def test_build_report_is_deterministic(fakes):
    docs = [fakes.document("https://r.example/a", title="A"), fakes.document("https://r.example/b", title="B")]
    args = (TEMPLATE, _summary(docs), docs, GENERATED, ["AI 前沿"])
    assert build_report(*args) == build_report(*args)


def test_build_report_fills_sections_in_local_time(fakes):
    docs = [fakes.document("https://r.example/a", title="A"), fakes.document("https://r.example/b", title="B")]

    report = build_report(
        TEMPLATE,
        _summary(docs),
        docs,
        GENERATED,
        ["AI 前沿", "技术趋势"],
        tz=ZoneInfo("Asia/Shanghai"),
    )

    # 23:00 UTC is the next morning in Shanghai
    assert report.title == "AI 动态夜报 - 2026/10/18"
    assert "生成于 2026/10/18 07:00:00" in report.body
    assert "关键词 AI 前沿, 技术趋势" in report.body
    assert "共 2 篇" in report.body
    assert "## 摘要\n摘要正文" in report.body
    assert "### A\n- 要点一\n- 要点二" in report.body
    assert "- [A](https://r.example/a)\n- [B](https://r.example/b)" in report.body
    assert report.document_count == 2
    assert report.summary == "摘要正文"
    assert report.kind == "digest"
    assert report.markdown().startswith("# AI 动态夜报 - 2026/10/18\n\n")


def test_build_report_without_documents(fakes):
    report = build_report(TEMPLATE, Summary("暂无有效内容", {}), [], GENERATED, ["k"])
    assert report.document_count == 0
    assert "## 要点" not in report.body
    assert "暂无有效内容" in report.body


def test_test_reports_are_marked(fakes):
    report = build_report(TEMPLATE, Summary("s", {}), [], GENERATED, ["k"], kind="test")
    assert report.title.startswith("🧪 ")
    assert report.kind == "test"


def test_category_counts(fakes):
    docs = [
        fakes.document("https://c.example/1", title="New LLM release"),
        fakes.document("https://c.example/2", title="Agent frameworks"),
        fakes.document("https://c.example/3", title="Weather"),
    ]
    counts = count_categories(docs, {"大模型": ["llm", "GPT"], "智能体": ["agent"], "开源": ["github"]})
    assert counts == {"大模型": 1, "智能体": 1, "开源": 0}

    report = build_report(TEMPLATE, _summary(docs), docs, GENERATED, ["k"], categories={"智能体": ["agent"]})
    assert report.category_counts == {"智能体": 1}


def test_error_report_carries_context():
    report = build_error_report("search stage failed", {"type": "digest", "stage": "search"}, GENERATED)
    assert report.title == ERROR_TITLE
    assert report.kind == "error"
    assert report.document_count == 0
    assert "错误信息: search stage failed" in report.body
    context = json.loads(report.body.split("上下文: ", 1)[1])
    assert context == {"stage": "search", "timestamp": "2026/10/17 23:00:00", "type": "digest"}


def test_writer_saves_markdown_without_clobbering(tmp_path):
    writer = ReportWriter(tmp_path / "reports")
    report = build_report(TEMPLATE, Summary("s", {}), [], GENERATED, ["k"])

    first = writer.save(report)
    second = writer.save(report)

    assert first != second
    assert first.name == f"digest-report-{int(GENERATED.timestamp() * 1000)}.md"
    assert first.read_text(encoding="utf-8") == report.markdown()
    assert second.read_text(encoding="utf-8") == report.markdown()
    assert not list((tmp_path / "reports").glob("*.tmp"))
