from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from uptime_monitor.models import MAX_HISTORY, CheckRecord, Classification


PLACEHOLDER = CheckRecord(timestamp=None, classification=Classification.CHECKING)


def uptime_percentage(checks: Sequence[CheckRecord]) -> str:
    """
    Share of operational checks over the given window, as a 2-decimal string.
    Returns "0.00" for an empty window.
    """
    total = len(checks)
    if total <= 0:
        return "0.00"
    ok_count = sum(1 for c in checks if c.classification is Classification.OPERATIONAL)
    pct = Decimal(ok_count * 100) / Decimal(total)
    return str(pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def average_response_time(checks: Sequence[CheckRecord]) -> int | None:
    """Mean of positive response times in ms, or None when there are none."""
    values = [int(c.response_time_ms) for c in checks if c.response_time_ms is not None and c.response_time_ms > 0]
    if not values:
        return None
    avg = Decimal(sum(values)) / Decimal(len(values))
    return int(avg.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def windowed(checks: Sequence[CheckRecord], n: int = MAX_HISTORY) -> list[CheckRecord]:
    n = int(n)
    if n <= 0:
        return []
    recent = list(checks[-n:])
    return [PLACEHOLDER] * (n - len(recent)) + recent


def format_response_time(value: int | None) -> str:
    if value is None or value <= 0:
        return "N/A"
    return f"{int(value)}ms"
