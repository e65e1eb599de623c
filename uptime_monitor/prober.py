from __future__ import annotations

import asyncio
import time

import httpx
import structlog

from uptime_monitor.models import CheckOutcome, Classification


DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_USER_AGENT = "Uptime-Monitor/1.0"
TIMEOUT_ERROR = "Timeout"

logger = structlog.get_logger(__name__)


def classify_status_code(status_code: int) -> Classification:
    if 200 <= int(status_code) < 400:
        return Classification.OPERATIONAL
    return Classification.DEGRADED


def _elapsed_ms(started: float) -> int:
    return max(0, int(round((time.perf_counter() - started) * 1000.0)))


def _error_text(exc: BaseException) -> str:
    msg = str(exc or "").strip()
    return msg if msg else type(exc).__name__


def build_client(*, user_agent: str = DEFAULT_USER_AGENT, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers={"User-Agent": user_agent},
        timeout=httpx.Timeout(timeout_seconds),
        follow_redirects=False,
    )


async def _fetch_and_drain(client: httpx.AsyncClient, url: str) -> int:
    async with client.stream("GET", url) as resp:
        # Body is drained to complete the exchange, never kept.
        async for _chunk in resp.aiter_raw():
            pass
        return resp.status_code


async def probe(
    url: str,
    *,
    client: httpx.AsyncClient,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> CheckOutcome:
    """
    One bounded GET against ``url``.

    Never raises for network conditions: transport errors and the deadline
    resolve to a ``down`` outcome with ``error`` set. The deadline covers the
    whole exchange including the body drain; on expiry the in-flight request
    is cancelled.
    """
    started = time.perf_counter()
    try:
        status_code = await asyncio.wait_for(_fetch_and_drain(client, url), timeout=float(timeout_seconds))
    except (asyncio.TimeoutError, httpx.TimeoutException):
        return CheckOutcome(
            classification=Classification.DOWN,
            response_time_ms=_elapsed_ms(started),
            error=TIMEOUT_ERROR,
        )
    except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
        return CheckOutcome(
            classification=Classification.DOWN,
            response_time_ms=_elapsed_ms(started),
            error=_error_text(exc),
        )

    return CheckOutcome(
        classification=classify_status_code(status_code),
        response_time_ms=_elapsed_ms(started),
        status_code=int(status_code),
    )


async def probe_service(
    service_id: str,
    url: str,
    *,
    client: httpx.AsyncClient,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> CheckOutcome:
    outcome = await probe(url, client=client, timeout_seconds=timeout_seconds)
    log = logger.bind(service=service_id, url=url)
    if outcome.classification is Classification.DOWN:
        log.warning(
            "probe_result",
            status=outcome.classification.value,
            response_time_ms=outcome.response_time_ms,
            error=outcome.error,
        )
    else:
        log.info(
            "probe_result",
            status=outcome.classification.value,
            response_time_ms=outcome.response_time_ms,
            status_code=outcome.status_code,
        )
    return outcome
