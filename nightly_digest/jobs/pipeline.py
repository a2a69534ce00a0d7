from __future__ import annotations

import logging
import math
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator

from nightly_digest.ai.client import AIConfig, OpenAICompatClient
from nightly_digest.ai.summarizer import Summarizer
from nightly_digest.config import Config, DigestSettings
from nightly_digest.crawler.fetcher import ContentFetcher
from nightly_digest.health import HealthCheck, HealthState, compose_health, run_checks
from nightly_digest.jobs.scheduler import CronSchedule
from nightly_digest.metrics.metrics import Metrics, RuntimeStats, write_status_json
from nightly_digest.notify.channels import Channel
from nightly_digest.notify.dispatcher import dispatch
from nightly_digest.notify.feishu import FeishuChannel
from nightly_digest.notify.slack import SlackChannel
from nightly_digest.notify.telegram import TelegramChannel
from nightly_digest.report.builder import build_error_report, build_report
from nightly_digest.report.writer import ReportWriter
from nightly_digest.retry import RetryingCaller
from nightly_digest.search.aggregator import SearchAggregator
from nightly_digest.search.client import JinaClient
from nightly_digest.types import Report, RunCounts, RunResult


logger = logging.getLogger(__name__)


RUN_IN_PROGRESS = "前一个任务仍在运行中"

TEST_RESULTS_PER_KEYWORD = 2
TEST_MAX_RESULTS = 2


class RunInProgress(Exception):
    pass


class RunGuard:
    """At most one pipeline run at a time.

    The check-and-set in ``claim`` has no ``await`` in between, so it is
    atomic on the event loop.
    """

    def __init__(self) -> None:
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @contextmanager
    def claim(self) -> Iterator[None]:
        if self._running:
            raise RunInProgress(RUN_IN_PROGRESS)
        self._running = True
        try:
            yield
        finally:
            self._running = False


@dataclass(frozen=True)
class RunOptions:
    keywords: list[str]
    results_per_keyword: int
    max_results: int
    concurrency: int
    kind: str = "digest"


@dataclass
class _Progress:
    searched: int = 0
    fetched: int = 0
    processed: int = 0
    failed_fetches: int = 0
    stage: str = "search"

    def counts(self) -> RunCounts:
        return RunCounts(
            searched=self.searched,
            fetched=self.fetched,
            processed=self.processed,
            failed_fetches=self.failed_fetches,
        )


class Pipeline:
    def __init__(
        self,
        *,
        settings: DigestSettings,
        search: SearchAggregator,
        fetcher: ContentFetcher,
        summarizer: Summarizer,
        writer: ReportWriter,
        channels: list[Channel],
        backend_checks: dict[str, HealthCheck],
        metrics: Metrics,
        schedule: CronSchedule | None = None,
        max_results: int = 10,
        max_concurrent: int = 3,
        status_path: Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings
        self._search = search
        self._fetcher = fetcher
        self._summarizer = summarizer
        self._writer = writer
        self._channels = list(channels)
        self._backend_checks = dict(backend_checks)
        self.metrics = metrics
        self.schedule = schedule
        self._max_results = max_results
        self._max_concurrent = max_concurrent
        self._status_path = status_path
        self._tz = schedule.tz if schedule is not None else None
        self._clock = clock or (lambda: datetime.now(self._tz or timezone.utc))
        self._guard = RunGuard()
        self.runtime_stats = RuntimeStats()

    @property
    def running(self) -> bool:
        return self._guard.running

    @property
    def channels(self) -> list[Channel]:
        return list(self._channels)

    def default_options(self) -> RunOptions:
        keywords = list(self.settings.keywords)
        per_keyword = max(1, math.ceil(self._max_results / max(1, len(keywords))))
        return RunOptions(
            keywords=keywords,
            results_per_keyword=per_keyword,
            max_results=self._max_results,
            concurrency=self._max_concurrent,
        )

    def test_options(self) -> RunOptions:
        return RunOptions(
            keywords=list(self.settings.test_keywords),
            results_per_keyword=TEST_RESULTS_PER_KEYWORD,
            max_results=TEST_MAX_RESULTS,
            concurrency=1,
            kind="test",
        )

    async def trigger_once(self, options: RunOptions | None = None) -> RunResult:
        """Single entry point for the scheduler and the CLI."""
        try:
            with self._guard.claim():
                return await self._execute(options or self.default_options())
        except RunInProgress:
            logger.warning("previous run still in progress, trigger rejected")
            self.metrics.runs_rejected_total.inc()
            return RunResult(success=False, rejected=True, error=RUN_IN_PROGRESS)

    async def run_test(self) -> RunResult:
        logger.info("test run start")
        return await self.trigger_once(self.test_options())

    async def _run_stages(self, opts: RunOptions, progress: _Progress) -> tuple[Report, Path]:
        progress.stage = "search"
        hits = await self._search.search(opts.keywords, opts.results_per_keyword, opts.max_results)
        progress.searched = len(hits)
        self.metrics.search_hits_total.inc(len(hits))

        progress.stage = "fetch"
        documents = await self._fetcher.fetch(hits, opts.concurrency)
        usable = [d for d in documents if d.ok]
        progress.fetched = len(usable)
        progress.failed_fetches = len(documents) - len(usable)
        self.metrics.fetch_success_total.inc(progress.fetched)
        self.metrics.fetch_fail_total.inc(progress.failed_fetches)

        progress.stage = "summarize"
        self.metrics.ai_calls_total.inc()
        try:
            with self.metrics.ai_latency_seconds.time():
                summary = await self._summarizer.summarize(usable)
        except Exception:
            self.metrics.ai_fail_total.inc()
            raise
        progress.processed = len(usable)

        progress.stage = "report"
        report = build_report(
            self.settings.report,
            summary,
            usable,
            generated_at=self._clock(),
            keywords=opts.keywords,
            categories=self.settings.categories or None,
            tz=self._tz,
            kind=opts.kind,
        )
        path = self._writer.save(report)
        return report, path

    async def _execute(self, opts: RunOptions) -> RunResult:
        started = time.perf_counter()
        self.runtime_stats.last_run_started_ts = time.time()
        self.metrics.runs_total.inc()
        progress = _Progress()
        logger.info("run start kind=%s keywords=%s", opts.kind, len(opts.keywords))

        try:
            report, path = await self._run_stages(opts, progress)
            result = RunResult(success=True, counts=progress.counts(), report=report, report_path=str(path))
        except Exception as e:
            logger.exception("run failed at stage=%s", progress.stage)
            self.metrics.runs_failed_total.inc()
            error = str(e) or e.__class__.__name__
            report = build_error_report(
                error,
                {"type": opts.kind, "stage": progress.stage},
                generated_at=self._clock(),
                tz=self._tz,
            )
            result = RunResult(success=False, counts=progress.counts(), report=report, error=error)

        result.duration_seconds = time.perf_counter() - started
        self.metrics.run_duration_seconds.observe(result.duration_seconds)

        result.notifications = await dispatch(result.report, self._channels)
        for outcome in result.notifications:
            self.metrics.record_notification(outcome.channel, outcome.delivered)

        self._finish(result)
        logger.info(
            "run done kind=%s success=%s duration=%.2fs searched=%s fetched=%s processed=%s",
            opts.kind,
            result.success,
            result.duration_seconds,
            result.counts.searched,
            result.counts.fetched,
            result.counts.processed,
        )
        return result

    def _finish(self, result: RunResult) -> None:
        stats = self.runtime_stats
        stats.last_run_finished_ts = time.time()
        stats.last_result = result.as_dict()
        stats.consecutive_failures = 0 if result.success else stats.consecutive_failures + 1
        if self._status_path is None:
            return
        try:
            write_status_json(self._status_path, self.get_status())
        except OSError:
            logger.exception("failed to write status json")

    def get_status(self) -> dict:
        stats = self.runtime_stats
        next_execution = None
        if self.schedule is not None:
            next_execution = self.schedule.next_fire().isoformat()
        return {
            "running": self.running,
            "cron_schedule": self.schedule.expression if self.schedule is not None else None,
            "timezone": self.schedule.timezone if self.schedule is not None else None,
            "last_execution": _iso(stats.last_run_started_ts),
            "last_finished": _iso(stats.last_run_finished_ts),
            "next_execution": next_execution,
            "consecutive_failures": stats.consecutive_failures,
            "last_result": stats.last_result,
        }

    async def health(self) -> HealthState:
        """Re-evaluated on every call; nothing is cached."""
        backends = await run_checks(self._backend_checks)
        channels = await run_checks({c.name: c.health_check for c in self._channels})
        healthy = compose_health(backends, channels)
        logger.info("health check: %s", "healthy" if healthy else "unhealthy")
        return HealthState(
            healthy=healthy,
            backends=backends,
            channels=channels,
            scheduler={
                "running": self.running,
                "cron_schedule": self.schedule.expression if self.schedule is not None else None,
                "timezone": self.schedule.timezone if self.schedule is not None else None,
            },
        )


def _iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts).astimezone().isoformat()


@dataclass
class AppContext:
    config: Config
    pipeline: Pipeline
    jina: JinaClient
    ai: OpenAICompatClient
    channels: list[Channel] = field(default_factory=list)

    async def aclose(self) -> None:
        await self.ai.aclose()
        await self.jina.aclose()
        for c in self.channels:
            await c.aclose()


def build_channels(config: Config) -> list[Channel]:
    timeout = config.request_timeout_seconds
    return [
        FeishuChannel(config.feishu_webhook_url, timeout_seconds=timeout),
        SlackChannel(
            webhook_url=config.slack_webhook_url,
            bot_token=config.slack_bot_token,
            channel=config.slack_channel,
            timeout_seconds=timeout,
        ),
        TelegramChannel(config.telegram_bot_token, config.telegram_chat_id),
    ]


def build_app_context(config: Config, settings: DigestSettings, metrics: Metrics) -> AppContext:
    jina = JinaClient(
        api_key=config.jina_api_key,
        search_url=config.jina_search_url,
        reader_url=config.jina_reader_url,
        timeout_seconds=config.request_timeout_seconds,
    )
    ai = OpenAICompatClient(
        AIConfig(
            base_url=config.ai_base_url,
            api_key=config.ai_api_key,
            model=config.ai_model,
            timeout_seconds=config.ai_timeout_seconds,
        )
    )
    caller = RetryingCaller(max_attempts=config.max_attempts, base_delay_seconds=config.retry_base_seconds)
    channels = build_channels(config)

    pipeline = Pipeline(
        settings=settings,
        search=SearchAggregator(jina, caller),
        fetcher=ContentFetcher(
            jina,
            caller,
            concurrency=config.max_concurrent,
            jitter_seconds=(config.fetch_jitter_min_ms / 1000.0, config.fetch_jitter_max_ms / 1000.0),
        ),
        summarizer=Summarizer(ai, caller, settings.prompts, concurrency=config.max_concurrent),
        writer=ReportWriter(config.reports_dir),
        channels=channels,
        backend_checks={"jina": jina.health_check, "ai": ai.health_check},
        metrics=metrics,
        schedule=CronSchedule(config.cron_schedule, config.timezone),
        max_results=config.max_results,
        max_concurrent=config.max_concurrent,
        status_path=config.status_json_path,
    )
    return AppContext(config=config, pipeline=pipeline, jina=jina, ai=ai, channels=channels)
