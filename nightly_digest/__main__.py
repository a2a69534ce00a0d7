from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv

from nightly_digest.config import load_config, load_digest_settings
from nightly_digest.jobs.pipeline import AppContext, build_app_context
from nightly_digest.jobs.scheduler import serve
from nightly_digest.logging_setup import setup_logging
from nightly_digest.metrics.metrics import Metrics
from nightly_digest.utils import now_utc


logger = logging.getLogger(__name__)


COMMANDS = ("run", "manual", "test", "status", "health")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="nightly-digest")
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=COMMANDS,
        help="run: scheduled service (default); manual: one run now; test: small run; "
        "status: scheduler status + health; health: health check only.",
    )
    parser.add_argument(
        "--env",
        default=".env",
        help="Path to .env file (default: .env).",
    )
    return parser.parse_args(argv)


def _print_json(data: dict) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


async def _serve_forever(ctx: AppContext) -> int:
    pipeline = ctx.pipeline
    if ctx.config.metrics_enabled:
        pipeline.metrics.start_server(ctx.config.metrics_bind, ctx.config.metrics_port)

    health = await pipeline.health()
    if not health.healthy:
        logger.warning("startup health check failed, check configuration: %s", health.as_dict())

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass

    if pipeline.schedule is None:
        raise RuntimeError("no schedule configured")
    await serve(pipeline.schedule, pipeline.trigger_once, stop)
    return 0


async def _run_command(command: str, ctx: AppContext) -> int:
    pipeline = ctx.pipeline
    try:
        if command == "run":
            return await _serve_forever(ctx)

        if command in ("manual", "test"):
            result = await (pipeline.run_test() if command == "test" else pipeline.trigger_once())
            _print_json(result.as_dict())
            return 0 if result.success else 1

        if command == "status":
            health = await pipeline.health()
            _print_json({"status": pipeline.get_status(), "health": health.as_dict(), "timestamp": now_utc().isoformat()})
            return 0

        health = await pipeline.health()
        _print_json(health.as_dict())
        return 0 if health.healthy else 1
    finally:
        await ctx.aclose()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    env_path = Path(args.env)
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()

    try:
        config = load_config()
    except (RuntimeError, ValueError) as e:
        setup_logging(os.getenv("LOG_LEVEL", "INFO"), "")
        logger.error("configuration error: %s", e)
        return 1

    setup_logging(config.log_level, config.log_file)

    try:
        settings = load_digest_settings(config.digest_config_path)
        ctx = build_app_context(config, settings, Metrics())
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error("startup failed: %s", e)
        return 1

    logger.info("nightly-digest starting command=%s", args.command)
    return asyncio.run(_run_command(args.command, ctx))


if __name__ == "__main__":
    sys.exit(main())
