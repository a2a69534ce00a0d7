from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import logging
import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from nightly_digest.ai.summarizer import Prompts
from nightly_digest.report.builder import ReportTemplate


logger = logging.getLogger(__name__)


DEFAULT_KEYWORDS = ["AI 前沿", "大型模型动态", "技术趋势"]
DEFAULT_TEST_KEYWORDS = ["AI 发展", "机器学习"]


def _env_str(name: str, default: str | None = None) -> str:
    value = os.getenv(name)
    if value is None or value == "":
        if default is None:
            raise RuntimeError(f"Missing required env: {name}")
        return default
    return value


def _env_int(name: str, default: int | None = None) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        if default is None:
            raise RuntimeError(f"Missing required env: {name}")
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip().lower()
    return value in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Config:
    # Jina search + reader
    jina_api_key: str
    jina_search_url: str
    jina_reader_url: str

    # AI
    ai_base_url: str
    ai_api_key: str
    ai_model: str
    ai_timeout_seconds: int

    # Channels
    feishu_webhook_url: str
    slack_webhook_url: str
    slack_bot_token: str
    slack_channel: str
    telegram_bot_token: str
    telegram_chat_id: str

    # Pipeline tunables
    max_results: int
    max_concurrent: int
    request_timeout_ms: int
    max_attempts: int
    retry_base_seconds: float
    fetch_jitter_min_ms: int
    fetch_jitter_max_ms: int

    # Trigger
    cron_schedule: str
    timezone: str

    # Files
    digest_config_path: Path
    reports_dir: Path

    # Metrics
    metrics_enabled: bool
    metrics_bind: str
    metrics_port: int
    status_json_path: Path

    # Logging
    log_level: str
    log_file: str

    @property
    def request_timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000.0


@dataclass(frozen=True)
class DigestSettings:
    """Keywords, templates and prompts, read once at startup."""

    keywords: list[str] = field(default_factory=lambda: list(DEFAULT_KEYWORDS))
    test_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_TEST_KEYWORDS))
    categories: dict[str, list[str]] = field(default_factory=dict)
    report: ReportTemplate = field(default_factory=ReportTemplate)
    prompts: Prompts = field(default_factory=Prompts)


def load_config() -> Config:
    max_concurrent = _env_int("MAX_CONCURRENT", 3)
    if max_concurrent < 1:
        raise RuntimeError("MAX_CONCURRENT must be >= 1")

    tz_name = _env_str("TIMEZONE", "Asia/Shanghai")
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise RuntimeError(f"Invalid TIMEZONE: {tz_name}") from e

    return Config(
        jina_api_key=_env_str("JINA_API_KEY"),
        jina_search_url=_env_str("JINA_SEARCH_URL", "https://s.jina.ai"),
        jina_reader_url=_env_str("JINA_READER_URL", "https://r.jina.ai"),
        ai_base_url=_env_str("AI_BASE_URL", "https://api.deepseek.com/v1"),
        ai_api_key=_env_str("DEEPSEEK_API_KEY"),
        ai_model=_env_str("AI_MODEL", "deepseek-chat"),
        ai_timeout_seconds=_env_int("AI_TIMEOUT_SECONDS", 60),
        feishu_webhook_url=_env_str("FEISHU_WEBHOOK_URL", ""),
        slack_webhook_url=_env_str("SLACK_WEBHOOK_URL", ""),
        slack_bot_token=_env_str("SLACK_BOT_TOKEN", ""),
        slack_channel=_env_str("SLACK_CHANNEL", "#ai-news"),
        telegram_bot_token=_env_str("TELEGRAM_BOT_TOKEN", ""),
        telegram_chat_id=_env_str("TELEGRAM_CHAT_ID", ""),
        max_results=_env_int("MAX_RESULTS", 10),
        max_concurrent=max_concurrent,
        request_timeout_ms=_env_int("REQUEST_TIMEOUT_MS", 30000),
        max_attempts=_env_int("MAX_ATTEMPTS", 3),
        retry_base_seconds=_env_float("RETRY_BASE_SECONDS", 1.0),
        fetch_jitter_min_ms=_env_int("FETCH_JITTER_MIN_MS", 500),
        fetch_jitter_max_ms=_env_int("FETCH_JITTER_MAX_MS", 1500),
        cron_schedule=_env_str("CRON_SCHEDULE", "0 7 * * *"),
        timezone=tz_name,
        digest_config_path=Path(_env_str("DIGEST_CONFIG_PATH", "config/digest.yaml")),
        reports_dir=Path(_env_str("REPORTS_DIR", "data/reports")),
        metrics_enabled=_env_bool("METRICS_ENABLED", False),
        metrics_bind=_env_str("METRICS_BIND", "127.0.0.1"),
        metrics_port=_env_int("METRICS_PORT", 9108),
        status_json_path=Path(_env_str("STATUS_JSON_PATH", "data/status.json")),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        log_file=_env_str("LOG_FILE", ""),
    )


def _str_list(value, name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{name} must be a list")
    return [str(x).strip() for x in value if str(x).strip()]


def load_digest_settings(path: Path) -> DigestSettings:
    if not path.exists():
        logger.warning("digest config %s not found, using defaults", path)
        return DigestSettings()

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"digest config must be a mapping: {path}")

    keywords = _str_list(data.get("keywords"), "keywords") or list(DEFAULT_KEYWORDS)
    test_keywords = _str_list(data.get("test_keywords"), "test_keywords") or list(DEFAULT_TEST_KEYWORDS)

    categories_raw = data.get("categories") or {}
    if not isinstance(categories_raw, dict):
        raise ValueError("categories must be a mapping of name -> keywords")
    categories = {str(k): _str_list(v, f"categories.{k}") for k, v in categories_raw.items()}

    prompts_raw = data.get("prompts") or {}
    defaults = Prompts()
    prompts = Prompts(
        system=str(prompts_raw.get("system") or defaults.system),
        summary=str(prompts_raw.get("summary") or defaults.summary),
        extract_key_points=str(prompts_raw.get("extract_key_points") or defaults.extract_key_points),
    )

    settings = DigestSettings(
        keywords=keywords,
        test_keywords=test_keywords,
        categories=categories,
        report=ReportTemplate.from_dict(data.get("report")),
        prompts=prompts,
    )
    logger.info("loaded %s keywords, %s categories from %s", len(keywords), len(categories), path)
    return settings
