from __future__ import annotations

import argparse
import asyncio
import logging
import os
import time

import structlog

from uptime_monitor.config import MonitorConfig, load_config
from uptime_monitor.errors import ConfigError, SnapshotWriteError
from uptime_monitor.history import HistoryStore
from uptime_monitor.runner import run_once


EXIT_OK = 0
EXIT_PERSISTENCE_FAILED = 1
EXIT_CONFIG_INVALID = 2

logger = structlog.get_logger(__name__)


def configure_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name or "INFO").upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run_tick(config: MonitorConfig) -> None:
    store = HistoryStore(config.state_path, max_history=config.max_history)
    await run_once(
        config.monitored_services(),
        store,
        timeout_seconds=config.timeout_seconds,
        concurrency=config.concurrency,
        user_agent=config.user_agent,
    )


async def run_loop(config: MonitorConfig) -> None:
    interval = float(config.interval_seconds)
    while True:
        started = time.monotonic()
        await run_tick(config)
        sleep_for = max(0.0, interval - (time.monotonic() - started))
        logger.debug("tick_sleep", seconds=round(sleep_for, 3))
        await asyncio.sleep(sleep_for)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="HTTP(S) uptime monitor")
    parser.add_argument(
        "--config",
        default=os.getenv("UPTIME_MONITOR_CONFIG", "config.yaml"),
        help="Path to YAML config",
    )
    parser.add_argument("--loop", action="store_true", help="Keep running a check cycle every interval_seconds")
    parser.add_argument("--log-level", default=None, help="Logging level (INFO, WARNING, ...)")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        configure_logging(args.log_level or os.getenv("LOG_LEVEL", "INFO"))
        logger.error("config_invalid", path=args.config, error=str(exc))
        return EXIT_CONFIG_INVALID
    configure_logging(args.log_level or config.log_level)

    try:
        if args.loop:
            asyncio.run(run_loop(config))
        else:
            asyncio.run(run_tick(config))
    except SnapshotWriteError:
        logger.exception("snapshot_write_failed", path=config.state_path)
        return EXIT_PERSISTENCE_FAILED
    except KeyboardInterrupt:
        logger.info("interrupted")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
