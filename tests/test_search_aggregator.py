from __future__ import annotations

from datetime import datetime, timezone

import pytest

from nightly_digest.errors import StageError, UpstreamError
from nightly_digest.search.aggregator import SearchAggregator, merge_hits, to_hit


def _row(url: str, published: str = "", title: str = "") -> dict:
    return {
        "title": title or url,
        "url": url,
        "description": "d",
        "content": "x" * 300,
        "published": published,
        "source": "web",
    }


def test_to_hit_parses_date_and_clips_snippet():
    hit = to_hit(_row("https://a.example/1", "2026-10-01T08:00:00Z"))
    assert hit.published_at == datetime(2026, 10, 1, 8, tzinfo=timezone.utc)
    assert hit.snippet == "x" * 200 + "..."


def test_merge_hits_dedups_first_wins_and_sorts_newest_first(fakes):
    old = datetime(2026, 1, 1, tzinfo=timezone.utc)
    new = datetime(2026, 6, 1, tzinfo=timezone.utc)
    a_first = fakes.hit("https://a.example/x", old, title="first")
    a_dup = fakes.hit("https://a.example/x", new, title="second")
    b = fakes.hit("https://b.example/y", new)
    undated = fakes.hit("https://c.example/z", None)

    merged = merge_hits([[a_first, undated], [a_dup, b]])

    assert [h.url for h in merged] == ["https://b.example/y", "https://a.example/x", "https://c.example/z"]
    assert merged[1].title == "first"


def test_merge_hits_keeps_merge_order_for_equal_dates(fakes):
    same = datetime(2026, 3, 3, tzinfo=timezone.utc)
    hits = [fakes.hit(f"https://s.example/{i}", same) for i in range(4)]
    merged = merge_hits([hits[:2], hits[2:]])
    assert [h.url for h in merged] == [h.url for h in hits]


def test_merge_hits_truncates(fakes):
    hits = [fakes.hit(f"https://t.example/{i}") for i in range(5)]
    assert len(merge_hits([hits], max_total=3)) == 3


@pytest.mark.asyncio
async def test_one_failing_keyword_does_not_fail_the_batch(fakes, caller):
    backend = fakes.Search(
        {
            "ok": [_row("https://a.example/1"), _row("https://a.example/2"), _row("https://a.example/3")],
            "broken": UpstreamError("HTTP_ERROR", "503"),
        }
    )
    aggregator = SearchAggregator(backend, caller)

    hits = await aggregator.search(["ok", "broken"], results_per_keyword=3)

    assert len(hits) == 3
    # the broken keyword went through the retrying caller
    assert [q for q, _ in backend.calls].count("broken") == 3


@pytest.mark.asyncio
async def test_every_keyword_failing_raises_stage_error(fakes):
    backend = fakes.Search({"a": RuntimeError("down"), "b": RuntimeError("down")})
    with pytest.raises(StageError) as info:
        await SearchAggregator(backend).search(["a", "b"], results_per_keyword=5)
    assert info.value.stage == "search"


@pytest.mark.asyncio
async def test_no_keywords_returns_empty(fakes):
    backend = fakes.Search({})
    assert await SearchAggregator(backend).search([], results_per_keyword=5) == []
    assert backend.calls == []


@pytest.mark.asyncio
async def test_results_per_keyword_and_max_total(fakes):
    backend = fakes.Search(
        {
            "k1": [_row(f"https://one.example/{i}", f"2026-10-0{i + 1}") for i in range(5)],
            "k2": [_row(f"https://two.example/{i}") for i in range(5)],
        }
    )
    hits = await SearchAggregator(backend).search(["k1", "k2"], results_per_keyword=2, max_total=3)
    assert backend.calls == [("k1", 2), ("k2", 2)]
    assert len(hits) == 3
    # dated hits outrank undated ones
    assert [h.url for h in hits[:2]] == ["https://one.example/1", "https://one.example/0"]
