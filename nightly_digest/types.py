from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class SearchHit:
    title: str
    url: str
    description: str
    snippet: str
    published_at: datetime | None
    source: str


@dataclass(frozen=True)
class Document:
    title: str
    url: str
    description: str
    snippet: str
    published_at: datetime | None
    source: str
    content: str = ""
    markdown: str = ""
    links: dict | list = field(default_factory=list)
    images: dict | list = field(default_factory=list)
    language: str = ""
    fetch_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.fetch_error is None

    @property
    def text(self) -> str:
        return self.content or self.markdown or ""


@dataclass(frozen=True)
class Summary:
    narrative: str
    key_points: dict[str, list[str]]


@dataclass(frozen=True)
class Report:
    title: str
    body: str
    generated_at: datetime
    document_count: int
    category_counts: dict[str, int] | None = None
    kind: str = "digest"
    summary: str = ""

    def markdown(self) -> str:
        return f"# {self.title}\n\n{self.body}"


@dataclass(frozen=True)
class NotificationOutcome:
    channel: str
    delivered: bool


@dataclass(frozen=True)
class RunCounts:
    searched: int = 0
    fetched: int = 0
    processed: int = 0
    failed_fetches: int = 0


@dataclass
class RunResult:
    success: bool
    duration_seconds: float = 0.0
    counts: RunCounts = field(default_factory=RunCounts)
    report: Report | None = None
    error: str | None = None
    rejected: bool = False
    report_path: str | None = None
    notifications: list[NotificationOutcome] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "rejected": self.rejected,
            "duration_seconds": round(self.duration_seconds, 2),
            "counts": {
                "searched": self.counts.searched,
                "fetched": self.counts.fetched,
                "processed": self.counts.processed,
                "failed_fetches": self.counts.failed_fetches,
            },
            "report_title": self.report.title if self.report is not None else None,
            "report_path": self.report_path,
            "error": self.error,
            "notifications": {o.channel: o.delivered for o in self.notifications},
        }
