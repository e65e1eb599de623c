from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


MAX_HISTORY = 60


class Classification(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    DOWN = "down"
    # Placeholder for slots/services without real data yet.
    CHECKING = "checking"

    @classmethod
    def parse(cls, value: object) -> "Classification":
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.CHECKING


@dataclass(frozen=True)
class MonitoredService:
    id: str
    name: str
    url: str


@dataclass(frozen=True)
class CheckOutcome:
    classification: Classification
    response_time_ms: int
    status_code: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class CheckRecord:
    timestamp: datetime | None
    classification: Classification
    response_time_ms: int | None = None
    status_code: int | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.timestamp is None


@dataclass
class ServiceHistory:
    status: Classification = Classification.CHECKING
    last_checked: datetime | None = None
    response_time_ms: int | None = None
    recent_checks: list[CheckRecord] = field(default_factory=list)


@dataclass
class StatusSnapshot:
    last_update: datetime | None = None
    services: dict[str, ServiceHistory] = field(default_factory=dict)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_instant(value: datetime | None) -> str | None:
    """ISO-8601 UTC with millisecond precision and a trailing Z."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_instant(value: object) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    s = value.strip()
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(s)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
