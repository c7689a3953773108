"""Rolling performance metrics over balance history."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Sequence

from .history import BalanceSnapshot

DAILY = timedelta(hours=24)
WEEKLY = timedelta(hours=24 * 7)
MONTHLY = timedelta(hours=24 * 30)


@dataclass(frozen=True, slots=True)
class MetricWindow:
    change: float = 0.0
    percentage: float = 0.0


@dataclass(frozen=True, slots=True)
class PerformanceMetrics:
    current: float
    daily: MetricWindow
    weekly: MetricWindow
    monthly: MetricWindow

    def to_dict(self) -> dict[str, object]:
        return {
            "current": self.current,
            "daily": {"change": self.daily.change, "percentage": self.daily.percentage},
            "weekly": {"change": self.weekly.change, "percentage": self.weekly.percentage},
            "monthly": {"change": self.monthly.change, "percentage": self.monthly.percentage},
        }


def calculate_change(current: float, previous: float | None) -> MetricWindow:
    """Absolute and percentage change; zero when there is no usable baseline."""
    if not previous:
        return MetricWindow()
    change = current - previous
    return MetricWindow(change=change, percentage=change / previous * 100)


def find_closest(history: Sequence[BalanceSnapshot], target: datetime) -> BalanceSnapshot | None:
    """Snapshot nearest to ``target``; on a tie the first one encountered wins."""
    closest: BalanceSnapshot | None = None
    best: timedelta | None = None
    for snapshot in history:
        distance = abs(snapshot.timestamp - target)
        if best is None or distance < best:
            closest, best = snapshot, distance
    return closest


def get_metrics(history: Sequence[BalanceSnapshot], now: datetime | None = None) -> PerformanceMetrics | None:
    """Daily, weekly and monthly change of the latest snapshot.

    Returns None for an empty history.
    """
    if not history:
        return None

    now = now or datetime.now(timezone.utc)
    latest = max(history, key=lambda s: s.timestamp)

    def window(duration: timedelta) -> MetricWindow:
        previous = find_closest(history, now - duration)
        if previous is None:
            return MetricWindow()
        return calculate_change(latest.total_usd, previous.total_usd)

    return PerformanceMetrics(
        current=latest.total_usd,
        daily=window(DAILY),
        weekly=window(WEEKLY),
        monthly=window(MONTHLY),
    )
