from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, start_http_server


logger = logging.getLogger(__name__)


@dataclass
class RuntimeStats:
    last_run_started_ts: float | None = None
    last_run_finished_ts: float | None = None
    last_result: dict | None = None
    consecutive_failures: int = 0


class Metrics:
    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self._registry = registry
        kw = {"registry": registry}

        self.runs_total = Counter("digest_runs_total", "Pipeline runs started", **kw)
        self.runs_failed_total = Counter("digest_runs_failed_total", "Pipeline runs failed", **kw)
        self.runs_rejected_total = Counter("digest_runs_rejected_total", "Triggers rejected while running", **kw)
        self.run_duration_seconds = Histogram(
            "digest_run_duration_seconds",
            "Pipeline run duration",
            buckets=(5, 15, 30, 60, 120, 300, 600, 1200),
            **kw,
        )

        self.search_hits_total = Counter("digest_search_hits_total", "Unique search hits", **kw)
        self.fetch_success_total = Counter("digest_fetch_success_total", "Documents fetched", **kw)
        self.fetch_fail_total = Counter("digest_fetch_fail_total", "Document fetch failures", **kw)

        self.ai_calls_total = Counter("digest_ai_calls_total", "Summarization runs", **kw)
        self.ai_fail_total = Counter("digest_ai_fail_total", "Summarization failures", **kw)
        self.ai_latency_seconds = Histogram(
            "digest_ai_latency_seconds",
            "Summarization latency",
            buckets=(0.5, 1, 2, 5, 10, 20, 60, 120, 240),
            **kw,
        )

        self.notifications_total = Counter(
            "digest_notifications_total", "Notification attempts", ["channel", "delivered"], **kw
        )

    def start_server(self, bind: str, port: int) -> None:
        start_http_server(port, addr=bind, registry=self._registry)
        logger.info("metrics server started at %s:%s", bind, port)

    def record_notification(self, channel: str, delivered: bool) -> None:
        self.notifications_total.labels(channel=channel, delivered=str(delivered).lower()).inc()


def write_status_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2, default=str)
    tmp.replace(path)
