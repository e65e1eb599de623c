from __future__ import annotations

import argparse
import asyncio
import json
import os
from pathlib import Path
from typing import Any, Sequence

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response

from uptime_monitor.config import MonitorConfig, load_config
from uptime_monitor.errors import ConfigError
from uptime_monitor.history import (
    Fresh,
    Loaded,
    LoadResult,
    parse_snapshot_bytes,
    read_snapshot,
    read_snapshot_bytes,
    snapshot_to_dict,
)
from uptime_monitor.main import EXIT_CONFIG_INVALID, configure_logging
from uptime_monitor.metrics import average_response_time, format_response_time, uptime_percentage, windowed
from uptime_monitor.models import Classification, MonitoredService, StatusSnapshot, format_instant


logger = structlog.get_logger(__name__)


def _load_announcements(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {"announcements": []}
    except (OSError, UnicodeDecodeError, ValueError, RecursionError) as exc:
        logger.warning("announcements_unreadable", path=str(path), error=str(exc))
        return {"announcements": []}
    items = data.get("announcements") if isinstance(data, dict) else None
    if not isinstance(items, list):
        return {"announcements": []}
    return {"announcements": [it for it in items if isinstance(it, dict)]}


def build_status_view(
    loaded: LoadResult,
    services: Sequence[MonitoredService],
    *,
    window: int,
) -> dict[str, Any]:
    """
    Per-service cards for the dashboard, in configured order.

    Services without history (or a missing/corrupt snapshot) are shown as
    "checking". Uptime and average latency cover the stored window only;
    ``uptimeWindowChecks`` says how many checks that is.
    """
    snapshot = loaded.snapshot
    cards: list[dict[str, Any]] = []
    for svc in services:
        hist = snapshot.services.get(svc.id)
        checks = list(hist.recent_checks) if hist is not None else []
        status = hist.status if hist is not None else Classification.CHECKING
        cards.append(
            {
                "id": svc.id,
                "name": svc.name,
                "url": svc.url,
                "status": status.value,
                "lastChecked": format_instant(hist.last_checked) if hist is not None else None,
                "responseTime": format_response_time(hist.response_time_ms if hist is not None else None),
                "uptime": uptime_percentage(checks),
                "uptimeWindowChecks": len(checks),
                "avgResponseTime": format_response_time(average_response_time(checks)),
                "history": [
                    {
                        "status": rec.classification.value,
                        "timestamp": format_instant(rec.timestamp),
                        "responseTime": rec.response_time_ms,
                    }
                    for rec in windowed(checks, window)
                ],
            }
        )

    return {
        "lastUpdate": format_instant(snapshot.last_update),
        "stateError": loaded.reason if isinstance(loaded, Fresh) else None,
        "services": cards,
    }


def create_app(config: MonitorConfig) -> FastAPI:
    app = FastAPI(title="Uptime Monitor Dashboard", version="0.1.0")
    app.state.config = config

    def _read() -> LoadResult:
        cfg: MonitorConfig = app.state.config
        return read_snapshot(Path(cfg.state_path), max_history=cfg.max_history)

    @app.get("/healthz")
    async def healthz() -> dict[str, Any]:
        return {"ok": True}

    @app.get("/status.json")
    async def status_document() -> Response:
        cfg: MonitorConfig = app.state.config
        data = await asyncio.to_thread(read_snapshot_bytes, Path(cfg.state_path))
        if not isinstance(data, Fresh):
            loaded = parse_snapshot_bytes(data, max_history=cfg.max_history)
            if isinstance(loaded, Loaded):
                # Stored bytes, unmodified.
                return Response(content=data, media_type="application/json")
        return JSONResponse(snapshot_to_dict(StatusSnapshot()))

    @app.get("/api/v1/status")
    async def status_view() -> dict[str, Any]:
        cfg: MonitorConfig = app.state.config
        loaded = await asyncio.to_thread(_read)
        if isinstance(loaded, Fresh) and loaded.reason != "missing":
            logger.warning("dashboard_state_fresh", path=cfg.state_path, reason=loaded.reason)
        return build_status_view(loaded, cfg.monitored_services(), window=cfg.max_history)

    @app.get("/announcements.json")
    async def announcements() -> dict[str, Any]:
        cfg: MonitorConfig = app.state.config
        return await asyncio.to_thread(_load_announcements, Path(cfg.announcements_path))

    return app


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Uptime monitor dashboard (read-only)")
    parser.add_argument("--config", default=os.getenv("UPTIME_MONITOR_CONFIG", "config.yaml"), help="Path to YAML config")
    parser.add_argument("--host", default=os.getenv("DASHBOARD_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("DASHBOARD_PORT", "8080")))
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        configure_logging(os.getenv("LOG_LEVEL", "INFO"))
        logger.error("config_invalid", path=args.config, error=str(exc))
        return EXIT_CONFIG_INVALID
    configure_logging(config.log_level)

    uvicorn.run(create_app(config), host=args.host, port=args.port, log_level=config.log_level.lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
