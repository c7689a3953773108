"""Balance snapshot history in SQLite with daily consolidation."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List

from .errors import HistoryStoreError
from .exchanges.protocol import ExchangeBalanceReport

logger = logging.getLogger(__name__)


class TimeRange(str, Enum):
    """Lookback range for history queries."""

    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"
    YEAR = "1y"
    ALL = "all"

    @property
    def duration(self) -> timedelta | None:
        return {
            TimeRange.WEEK: timedelta(days=7),
            TimeRange.MONTH: timedelta(days=30),
            TimeRange.QUARTER: timedelta(days=90),
            TimeRange.YEAR: timedelta(days=365),
            TimeRange.ALL: None,
        }[self]


DEFAULT_RANGE = TimeRange.MONTH


@dataclass(frozen=True, slots=True)
class BalanceSnapshot:
    """Total USD balance and its per-account breakdown at one instant."""

    timestamp: datetime
    total_usd: float
    exchanges: Dict[str, float] = field(default_factory=dict)

    @property
    def day(self) -> date:
        return self.timestamp.astimezone(timezone.utc).date()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "total_usd": self.total_usd,
            "exchanges": dict(self.exchanges),
        }


def consolidate_daily(snapshots: List[BalanceSnapshot]) -> List[BalanceSnapshot]:
    """Keep the latest snapshot of each UTC calendar day, sorted ascending."""
    latest: Dict[date, BalanceSnapshot] = {}
    for snapshot in snapshots:
        current = latest.get(snapshot.day)
        if current is None or snapshot.timestamp >= current.timestamp:
            latest[snapshot.day] = snapshot
    return sorted(latest.values(), key=lambda s: s.timestamp)


class BalanceHistory:
    """Append-only store of balance snapshots."""

    def __init__(
        self,
        sqlite_file: Path,
        *,
        retention_days: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the history store, creating the database if needed."""
        self.sqlite_file = Path(sqlite_file)
        self.retention_days = retention_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._write_lock = threading.Lock()

        try:
            self.sqlite_file.parent.mkdir(parents=True, exist_ok=True)
            self._init_sqlite()
            if retention_days:
                self._cleanup_old_records(retention_days)
        except (OSError, sqlite3.Error) as e:
            raise HistoryStoreError(f"Failed to open balance history: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.sqlite_file)

    def _init_sqlite(self) -> None:
        """Initialize SQLite database with tables."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS balance_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    total_balance REAL NOT NULL,
                    exchanges TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_balance_history_timestamp
                ON balance_history(timestamp)
            """)

    def _cleanup_old_records(self, days: int) -> None:
        """Remove snapshots older than the retention window."""
        cutoff_time = self._clock() - timedelta(days=days)

        with self._write_lock, self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM balance_history WHERE timestamp < ?",
                (_format_ts(cutoff_time),),
            )
            if cursor.rowcount:
                logger.info("Pruned %d snapshots older than %d days", cursor.rowcount, days)

    def save_snapshot(self, total_usd: float, exchanges: Dict[str, float]) -> List[BalanceSnapshot]:
        """Append one snapshot taken now and return the default-range history."""
        snapshot = BalanceSnapshot(
            timestamp=self._clock(),
            total_usd=float(total_usd),
            exchanges={label: float(value) for label, value in exchanges.items()},
        )
        breakdown = json.dumps(
            [{"exchange": label, "balance": value} for label, value in snapshot.exchanges.items()]
        )

        try:
            with self._write_lock, self._connect() as conn:
                conn.execute(
                    "INSERT INTO balance_history (timestamp, total_balance, exchanges) VALUES (?, ?, ?)",
                    (_format_ts(snapshot.timestamp), snapshot.total_usd, breakdown),
                )
        except sqlite3.Error as e:
            raise HistoryStoreError(f"Failed to save balance snapshot: {e}") from e

        logger.info("Recorded balance snapshot: %.2f USD across %d accounts", snapshot.total_usd, len(exchanges))
        return self.get_history(DEFAULT_RANGE)

    def save_reports(self, reports: List[ExchangeBalanceReport]) -> List[BalanceSnapshot]:
        """Record a snapshot from aggregated balance reports.

        Failed reports are recorded at 0 USD, so the snapshot total
        understates the true balance for that day.
        """
        failed = [r.exchange for r in reports if r.error]
        if failed:
            logger.warning("Snapshot includes failed accounts recorded as 0 USD: %s", ", ".join(failed))
        exchanges = {r.exchange: r.total_usd for r in reports}
        return self.save_snapshot(sum(exchanges.values()), exchanges)

    def get_history(self, time_range: TimeRange | str = DEFAULT_RANGE) -> List[BalanceSnapshot]:
        """Return one snapshot per calendar day within the range, oldest first."""
        time_range = TimeRange(time_range)
        duration = time_range.duration

        query = "SELECT timestamp, total_balance, exchanges FROM balance_history"
        params: tuple[Any, ...] = ()
        if duration is not None:
            query += " WHERE timestamp >= ?"
            params = (_format_ts(self._clock() - duration),)
        query += " ORDER BY timestamp, id"

        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise HistoryStoreError(f"Failed to read balance history: {e}") from e

        snapshots = [s for s in (self._row_to_snapshot(row) for row in rows) if s is not None]
        return consolidate_daily(snapshots)

    @staticmethod
    def _row_to_snapshot(row: sqlite3.Row) -> BalanceSnapshot | None:
        timestamp = _parse_timestamp(row["timestamp"])
        if timestamp is None:
            logger.warning("Skipping snapshot with unreadable timestamp %r", row["timestamp"])
            return None
        return BalanceSnapshot(
            timestamp=timestamp,
            total_usd=float(row["total_balance"] or 0.0),
            exchanges=_parse_breakdown(row["exchanges"]),
        )


def _format_ts(ts: datetime) -> str:
    # Fixed-width UTC text keeps lexical order equal to chronological order.
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _parse_timestamp(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        ts = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def _parse_breakdown(raw: str | None) -> Dict[str, float]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    breakdown: Dict[str, float] = {}
    if isinstance(parsed, list):
        for item in parsed:
            if isinstance(item, dict) and item.get("exchange") is not None:
                try:
                    breakdown[str(item["exchange"])] = float(item.get("balance") or 0.0)
                except (TypeError, ValueError):
                    breakdown[str(item["exchange"])] = 0.0
    return breakdown
