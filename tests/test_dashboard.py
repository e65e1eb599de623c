from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

from fastapi.testclient import TestClient

from uptime_monitor.config import MonitorConfig, ServiceConfig
from uptime_monitor.dashboard import build_status_view, create_app
from uptime_monitor.history import Fresh, HistoryStore, Loaded, merge_outcome
from uptime_monitor.models import CheckOutcome, Classification, MonitoredService, StatusSnapshot


T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _config(tmp_path: Path, *, max_history: int = 60) -> MonitorConfig:
    return MonitorConfig(
        state_path=str(tmp_path / "status.json"),
        announcements_path=str(tmp_path / "announcements.json"),
        max_history=max_history,
        services=[
            ServiceConfig(id="canary-cloud", name="Canary Cloud", url="https://cloud.example.org/"),
            ServiceConfig(id="character-wiki", name="Character wiki", url="https://wiki.example.org/"),
        ],
    )


def test_build_status_view_without_history_shows_checking() -> None:
    services = [MonitoredService(id="a", name="A", url="https://a.example.org/")]
    view = build_status_view(Fresh(StatusSnapshot(), reason="missing"), services, window=5)

    assert view["lastUpdate"] is None
    assert view["stateError"] == "missing"
    card = view["services"][0]
    assert card["status"] == "checking"
    assert card["uptime"] == "0.00"
    assert card["uptimeWindowChecks"] == 0
    assert card["avgResponseTime"] == "N/A"
    assert card["responseTime"] == "N/A"
    assert card["lastChecked"] is None
    assert card["history"] == [{"status": "checking", "timestamp": None, "responseTime": None}] * 5


def test_build_status_view_with_history() -> None:
    snap = StatusSnapshot(last_update=T0 + timedelta(minutes=2))
    merge_outcome(snap, "a", CheckOutcome(Classification.OPERATIONAL, 100, status_code=200), T0)
    merge_outcome(snap, "a", CheckOutcome(Classification.DOWN, 300, error="Timeout"), T0 + timedelta(minutes=1))
    services = [MonitoredService(id="a", name="A", url="https://a.example.org/")]

    view = build_status_view(Loaded(snap), services, window=4)

    assert view["stateError"] is None
    assert view["lastUpdate"] == "2024-05-01T12:02:00.000Z"
    card = view["services"][0]
    assert card["status"] == "down"
    assert card["uptime"] == "50.00"
    assert card["uptimeWindowChecks"] == 2
    assert card["avgResponseTime"] == "200ms"
    assert card["responseTime"] == "300ms"
    assert [slot["status"] for slot in card["history"]] == ["checking", "checking", "operational", "down"]
    assert card["history"][-1]["timestamp"] == "2024-05-01T12:01:00.000Z"


def test_status_endpoint_missing_state_renders_checking(tmp_path: Path) -> None:
    client = TestClient(create_app(_config(tmp_path)))
    r = client.get("/api/v1/status")
    assert r.status_code == 200
    body = r.json()
    assert [c["id"] for c in body["services"]] == ["canary-cloud", "character-wiki"]
    assert all(c["status"] == "checking" for c in body["services"])
    assert all(len(c["history"]) == 60 for c in body["services"])


def test_status_endpoint_corrupt_state_renders_checking(tmp_path: Path) -> None:
    (tmp_path / "status.json").write_text("{broken", encoding="utf-8")
    client = TestClient(create_app(_config(tmp_path)))
    r = client.get("/api/v1/status")
    assert r.status_code == 200
    body = r.json()
    assert body["stateError"]
    assert all(c["status"] == "checking" for c in body["services"])

    r = client.get("/status.json")
    assert r.status_code == 200
    assert r.json() == {"lastUpdate": None, "services": {}}


def test_status_endpoints_with_saved_snapshot(tmp_path: Path) -> None:
    config = _config(tmp_path, max_history=3)
    store = HistoryStore(config.state_path, max_history=config.max_history)
    snap = StatusSnapshot(last_update=T0)
    merge_outcome(snap, "canary-cloud", CheckOutcome(Classification.DEGRADED, 250, status_code=503), T0)
    store.save(snap)

    client = TestClient(create_app(config))
    body = client.get("/api/v1/status").json()
    cards = {c["id"]: c for c in body["services"]}
    assert cards["canary-cloud"]["status"] == "degraded"
    assert cards["canary-cloud"]["uptime"] == "0.00"
    assert len(cards["canary-cloud"]["history"]) == 3
    assert cards["character-wiki"]["status"] == "checking"

    doc = client.get("/status.json").json()
    assert doc["services"]["canary-cloud"]["recentChecks"][0]["statusCode"] == 503


def test_announcements_passthrough(tmp_path: Path) -> None:
    config = _config(tmp_path)
    client = TestClient(create_app(config))
    assert client.get("/announcements.json").json() == {"announcements": []}

    items = [
        {"id": "1", "title": "Maintenance", "message": "Tonight", "type": "info", "timestamp": "2024-05-01T12:00:00Z"},
    ]
    Path(config.announcements_path).write_text(json.dumps({"announcements": items}), encoding="utf-8")
    assert client.get("/announcements.json").json() == {"announcements": items}

    Path(config.announcements_path).write_text("nope", encoding="utf-8")
    assert client.get("/announcements.json").json() == {"announcements": []}


def test_healthz(tmp_path: Path) -> None:
    client = TestClient(create_app(_config(tmp_path)))
    assert client.get("/healthz").json() == {"ok": True}


def test_status_document_is_served_as_stored(tmp_path: Path) -> None:
    config = _config(tmp_path, max_history=2)
    stored = {
        "lastUpdate": "2024-05-01T12:02:00.000Z",
        "services": {
            "canary-cloud": {
                "status": "operational",
                "lastChecked": "2024-05-01T12:02:00.000Z",
                "responseTime": 90,
                "region": "eu",
                "recentChecks": [
                    {"timestamp": f"2024-05-01T12:0{i}:00.000Z", "status": "operational", "responseTime": 90}
                    for i in range(3)
                ]
                + [{"status": "down"}],
            }
        },
    }
    Path(config.state_path).write_text(json.dumps(stored), encoding="utf-8")

    client = TestClient(create_app(config))
    r = client.get("/status.json")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/json")
    assert r.json() == stored

    # The derived view still applies the configured window.
    card = client.get("/api/v1/status").json()["services"][0]
    assert card["uptimeWindowChecks"] == 2


def test_status_endpoint_deeply_nested_state_renders_checking(tmp_path: Path) -> None:
    (tmp_path / "status.json").write_text("[" * 200000, encoding="utf-8")
    client = TestClient(create_app(_config(tmp_path)))
    r = client.get("/api/v1/status")
    assert r.status_code == 200
    assert all(c["status"] == "checking" for c in r.json()["services"])
    assert client.get("/status.json").json() == {"lastUpdate": None, "services": {}}
