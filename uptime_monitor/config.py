"""Configuration for the uptime monitor."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, Field, ValidationError

from uptime_monitor.errors import ConfigError
from uptime_monitor.models import MAX_HISTORY, MonitoredService
from uptime_monitor.prober import DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT


DEFAULT_CONFIG_PATH = "config.yaml"


class ServiceConfig(BaseModel):
    """One monitored endpoint."""
    id: str = Field(description="Stable service key used in the snapshot")
    name: str = Field(default="", description="Display name")
    url: str = Field(description="HTTP(S) endpoint to probe")

    def to_service(self) -> MonitoredService:
        return MonitoredService(id=self.id, name=self.name or self.id, url=self.url)


class MonitorConfig(BaseModel):
    """Main configuration for the monitor and its dashboard."""

    # Storage
    state_path: str = Field(default="status.json", description="Snapshot JSON file")
    announcements_path: str = Field(default="announcements.json", description="Announcements document served read-only")

    # Probing
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, description="Per-probe deadline")
    concurrency: int = Field(default=1, description="Max probes in flight per run")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent header sent with every probe")

    # History
    max_history: int = Field(default=MAX_HISTORY, description="Checks retained per service")

    # Scheduling (loop mode only)
    interval_seconds: float = Field(default=60.0, description="Seconds between ticks in loop mode")

    log_level: str = Field(default="INFO", description="Logging level")

    services: list[ServiceConfig] = Field(default_factory=list, description="Monitored services")

    def monitored_services(self) -> list[MonitoredService]:
        return [s.to_service() for s in self.services]


def validate_config(config: MonitorConfig) -> MonitorConfig:
    if not config.services:
        raise ConfigError("Config must contain a non-empty 'services' list")

    seen: set[str] = set()
    for svc in config.services:
        sid = svc.id.strip()
        if not sid:
            raise ConfigError("Service id must be non-empty")
        if sid in seen:
            raise ConfigError(f"Duplicate service id: {sid}")
        seen.add(sid)
        scheme = (urlsplit(svc.url).scheme or "").lower()
        if scheme not in {"http", "https"} or not urlsplit(svc.url).netloc:
            raise ConfigError(f"Service {sid} url must be an absolute http(s) URL: {svc.url!r}")

    if config.timeout_seconds <= 0:
        raise ConfigError("timeout_seconds must be > 0")
    if config.concurrency < 1:
        raise ConfigError("concurrency must be >= 1")
    if config.max_history < 1:
        raise ConfigError("max_history must be >= 1")
    if config.interval_seconds <= 0:
        raise ConfigError("interval_seconds must be > 0")
    return config


def load_config(config_path: Optional[str] = None) -> MonitorConfig:
    """Load configuration from a YAML file plus environment overrides."""
    if config_path is None:
        config_path = os.getenv("UPTIME_MONITOR_CONFIG", DEFAULT_CONFIG_PATH)

    path = Path(config_path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read config {path}: {exc}") from exc

    if not isinstance(config_data, dict):
        raise ConfigError("Config YAML must be a mapping")

    # Relative storage paths in the file resolve against the file's directory.
    base = path.resolve().parent
    for key in ("state_path", "announcements_path"):
        raw = config_data.get(key)
        if isinstance(raw, str) and raw.strip() and not Path(raw).is_absolute():
            config_data[key] = str(base / raw)

    env_overrides = {
        "state_path": os.getenv("UPTIME_STATE_PATH"),
        "timeout_seconds": os.getenv("UPTIME_TIMEOUT_SECONDS"),
        "concurrency": os.getenv("UPTIME_CONCURRENCY"),
        "log_level": os.getenv("LOG_LEVEL"),
    }
    for key, value in env_overrides.items():
        if value is not None and value.strip():
            config_data[key] = value.strip()

    try:
        config = MonitorConfig(**config_data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config {path}: {exc}") from exc

    return validate_config(config)
