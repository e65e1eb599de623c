from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

import httpx
import structlog

from uptime_monitor.history import Fresh, HistoryStore
from uptime_monitor.models import CheckOutcome, MonitoredService, StatusSnapshot, utc_now
from uptime_monitor.prober import DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT, build_client, probe_service


logger = structlog.get_logger(__name__)


@dataclass
class RunReport:
    started_at: datetime
    finished_at: datetime
    started_fresh: bool
    fresh_reason: str | None = None
    outcomes: dict[str, CheckOutcome] = field(default_factory=dict)
    snapshot: StatusSnapshot | None = None

    def counts(self) -> dict[str, int]:
        out: dict[str, int] = {}
        for outcome in self.outcomes.values():
            key = outcome.classification.value
            out[key] = out.get(key, 0) + 1
        return out


async def _probe_all(
    services: Sequence[MonitoredService],
    *,
    client: httpx.AsyncClient,
    timeout_seconds: float,
    concurrency: int,
    now: Callable[[], datetime],
) -> list[tuple[CheckOutcome, datetime]]:
    if concurrency <= 1:
        results: list[tuple[CheckOutcome, datetime]] = []
        for svc in services:
            outcome = await probe_service(svc.id, svc.url, client=client, timeout_seconds=timeout_seconds)
            results.append((outcome, now()))
        return results

    semaphore = asyncio.Semaphore(concurrency)

    async def _one(svc: MonitoredService) -> tuple[CheckOutcome, datetime]:
        async with semaphore:
            outcome = await probe_service(svc.id, svc.url, client=client, timeout_seconds=timeout_seconds)
            return outcome, now()

    return list(await asyncio.gather(*(_one(svc) for svc in services)))


async def run_once(
    services: Sequence[MonitoredService],
    store: HistoryStore,
    *,
    client: httpx.AsyncClient | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    concurrency: int = 1,
    user_agent: str = DEFAULT_USER_AGENT,
    now: Callable[[], datetime] = utc_now,
) -> RunReport:
    """
    One tick: load snapshot, probe every service, merge, persist.

    Probes may run concurrently; merging happens afterwards, in configured
    order, on this coroutine only. ``SnapshotWriteError`` from the final save
    propagates.
    """
    started_at = now()
    cycle_started = time.perf_counter()

    loaded = store.load()
    snapshot = loaded.snapshot

    if client is None:
        async with build_client(user_agent=user_agent, timeout_seconds=timeout_seconds) as owned_client:
            results = await _probe_all(
                services, client=owned_client, timeout_seconds=timeout_seconds, concurrency=concurrency, now=now
            )
    else:
        results = await _probe_all(
            services, client=client, timeout_seconds=timeout_seconds, concurrency=concurrency, now=now
        )

    outcomes: dict[str, CheckOutcome] = {}
    for svc, (outcome, observed_at) in zip(services, results):
        store.merge(snapshot, svc.id, outcome, observed_at)
        outcomes[svc.id] = outcome

    finished_at = now()
    snapshot.last_update = finished_at
    store.save(snapshot)

    report = RunReport(
        started_at=started_at,
        finished_at=finished_at,
        started_fresh=isinstance(loaded, Fresh),
        fresh_reason=loaded.reason if isinstance(loaded, Fresh) else None,
        outcomes=outcomes,
        snapshot=snapshot,
    )
    logger.info(
        "run_complete",
        services=len(services),
        elapsed_ms=round((time.perf_counter() - cycle_started) * 1000.0, 3),
        **report.counts(),
    )
    return report
