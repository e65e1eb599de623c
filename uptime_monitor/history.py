from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Union

import structlog

from uptime_monitor.errors import SnapshotWriteError
from uptime_monitor.models import (
    MAX_HISTORY,
    CheckOutcome,
    CheckRecord,
    Classification,
    ServiceHistory,
    StatusSnapshot,
    format_instant,
    parse_instant,
)


logger = structlog.get_logger(__name__)


# On-disk snapshot (status.json), shared with the dashboard:
# {
#   "lastUpdate": iso | null,
#   "services": {
#     "<id>": {"status", "lastChecked", "responseTime", "recentChecks": [
#       {"timestamp", "status", "responseTime", "statusCode"?}
#     ]}
#   }
# }


@dataclass(frozen=True)
class Loaded:
    snapshot: StatusSnapshot


@dataclass(frozen=True)
class Fresh:
    snapshot: StatusSnapshot
    reason: str


LoadResult = Union[Loaded, Fresh]


def _coerce_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _record_to_dict(record: CheckRecord) -> dict[str, Any]:
    out: dict[str, Any] = {
        "timestamp": format_instant(record.timestamp),
        "status": record.classification.value,
        "responseTime": record.response_time_ms,
    }
    if record.status_code is not None:
        out["statusCode"] = int(record.status_code)
    return out


def _record_from_dict(raw: Any) -> CheckRecord | None:
    if not isinstance(raw, dict):
        return None
    ts = parse_instant(raw.get("timestamp"))
    if ts is None:
        return None
    return CheckRecord(
        timestamp=ts,
        classification=Classification.parse(raw.get("status")),
        response_time_ms=_coerce_int(raw.get("responseTime")),
        status_code=_coerce_int(raw.get("statusCode")),
    )


def snapshot_to_dict(snapshot: StatusSnapshot) -> dict[str, Any]:
    services: dict[str, Any] = {}
    for service_id, hist in snapshot.services.items():
        services[service_id] = {
            "status": hist.status.value,
            "lastChecked": format_instant(hist.last_checked),
            "responseTime": hist.response_time_ms,
            "recentChecks": [_record_to_dict(r) for r in hist.recent_checks],
        }
    return {
        "lastUpdate": format_instant(snapshot.last_update),
        "services": services,
    }


def snapshot_from_dict(raw: Any, *, max_history: int = MAX_HISTORY) -> StatusSnapshot:
    """
    Best-effort decode of a snapshot document.
    Invalid service entries and check records are skipped, so a partially
    damaged file still yields whatever history is usable.
    """
    if not isinstance(raw, dict):
        raise ValueError("snapshot must be a JSON object")

    services: dict[str, ServiceHistory] = {}
    raw_services = raw.get("services")
    if isinstance(raw_services, dict):
        for service_id, item in raw_services.items():
            if not isinstance(service_id, str) or not service_id or not isinstance(item, dict):
                continue
            checks_raw = item.get("recentChecks")
            checks: list[CheckRecord] = []
            if isinstance(checks_raw, list):
                for entry in checks_raw:
                    record = _record_from_dict(entry)
                    if record is not None:
                        checks.append(record)
            if max_history > 0 and len(checks) > max_history:
                checks = checks[-max_history:]
            services[service_id] = ServiceHistory(
                status=Classification.parse(item.get("status")),
                last_checked=parse_instant(item.get("lastChecked")),
                response_time_ms=_coerce_int(item.get("responseTime")),
                recent_checks=checks,
            )

    return StatusSnapshot(last_update=parse_instant(raw.get("lastUpdate")), services=services)


def merge_outcome(
    snapshot: StatusSnapshot,
    service_id: str,
    outcome: CheckOutcome,
    observed_at: datetime,
    *,
    max_history: int = MAX_HISTORY,
) -> StatusSnapshot:
    hist = snapshot.services.get(service_id)
    if hist is None:
        hist = ServiceHistory()
        snapshot.services[service_id] = hist

    record = CheckRecord(
        timestamp=observed_at,
        classification=outcome.classification,
        response_time_ms=int(outcome.response_time_ms),
        status_code=outcome.status_code,
    )
    hist.recent_checks.append(record)
    hist.status = record.classification
    hist.last_checked = record.timestamp
    hist.response_time_ms = record.response_time_ms

    # FIFO eviction: keep only the most recent max_history records.
    overflow = len(hist.recent_checks) - max(1, int(max_history))
    if overflow > 0:
        del hist.recent_checks[:overflow]
    return snapshot


def parse_snapshot_bytes(data: bytes, *, max_history: int = MAX_HISTORY) -> LoadResult:
    try:
        raw = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError) as exc:
        return Fresh(StatusSnapshot(), reason=f"unreadable: {type(exc).__name__}: {exc}")

    try:
        return Loaded(snapshot_from_dict(raw, max_history=max_history))
    except ValueError as exc:
        return Fresh(StatusSnapshot(), reason=f"invalid: {exc}")


def read_snapshot_bytes(path: Path) -> bytes | Fresh:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return Fresh(StatusSnapshot(), reason="missing")
    except OSError as exc:
        return Fresh(StatusSnapshot(), reason=f"unreadable: {type(exc).__name__}: {exc}")


def read_snapshot(path: Path, *, max_history: int = MAX_HISTORY) -> LoadResult:
    data = read_snapshot_bytes(path)
    if isinstance(data, Fresh):
        return data
    return parse_snapshot_bytes(data, max_history=max_history)


def write_snapshot_atomic(path: Path, snapshot: StatusSnapshot) -> None:
    tmp = path.with_name(f"{path.name}.tmp")
    try:
        payload = json.dumps(snapshot_to_dict(snapshot), ensure_ascii=False, indent=2)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(payload + "\n", encoding="utf-8")
        tmp.replace(path)
    except (OSError, TypeError, ValueError) as exc:
        try:
            tmp.unlink(missing_ok=True)
        except OSError:
            pass
        raise SnapshotWriteError(str(path), exc) from exc


class HistoryStore:
    """Load/merge/save of the whole snapshot document at ``path``."""

    def __init__(self, path: str | Path, *, max_history: int = MAX_HISTORY) -> None:
        self.path = Path(path)
        self.max_history = max(1, int(max_history))

    def load(self) -> LoadResult:
        result = read_snapshot(self.path, max_history=self.max_history)
        if isinstance(result, Fresh):
            logger.info("snapshot_fresh", path=str(self.path), reason=result.reason)
        else:
            logger.debug("snapshot_loaded", path=str(self.path), services=len(result.snapshot.services))
        return result

    def merge(
        self,
        snapshot: StatusSnapshot,
        service_id: str,
        outcome: CheckOutcome,
        observed_at: datetime,
    ) -> StatusSnapshot:
        return merge_outcome(snapshot, service_id, outcome, observed_at, max_history=self.max_history)

    def save(self, snapshot: StatusSnapshot) -> None:
        write_snapshot_atomic(self.path, snapshot)
        logger.info("snapshot_saved", path=str(self.path), services=len(snapshot.services))
