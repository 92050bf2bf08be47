"""Valuation / cash-flow series and their alignment into chartable points.

Valuation snapshots are taken weekly on the anchor weekday (Sunday by default),
so cash flows are bucketed into the period that ends on the next anchor day and
only become visible in the cumulative deposit series at that snapshot.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

SECONDS_PER_DAY = 86_400
SUNDAY = 6

# A Monday; anchor references are built from it so that any weekday can be the anchor.
_REFERENCE_MONDAY = date(1970, 1, 5)

Point = tuple[int, float]


@dataclass(frozen=True)
class WeekPolicy:
    anchor_weekday: int = SUNDAY
    bucket_days: int = 7

    @property
    def bucket_seconds(self) -> int:
        return max(1, int(self.bucket_days)) * SECONDS_PER_DAY

    def period_end(self, day: date) -> date:
        """First anchor day on or after ``day`` (``day`` itself if it is one)."""
        size = max(1, int(self.bucket_days))
        reference = _REFERENCE_MONDAY + timedelta(days=self.anchor_weekday % 7)
        offset = (reference.toordinal() - day.toordinal()) % size
        return day + timedelta(days=offset)

    def last_anchor(self, day: date) -> date:
        """Most recent anchor day on or before ``day``."""
        end = self.period_end(day)
        if end == day:
            return day
        return end - timedelta(days=max(1, int(self.bucket_days)))


DEFAULT_POLICY = WeekPolicy()


class FlowKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


@dataclass(frozen=True)
class ValuationPoint:
    timestamp: int
    gross_value: float
    fee: float = 0.0

    @property
    def net_value(self) -> float:
        return self.gross_value - self.fee


@dataclass(frozen=True)
class CashFlowEvent:
    date: date
    kind: FlowKind
    amount: float

    @property
    def signed_amount(self) -> float:
        return -self.amount if self.kind is FlowKind.WITHDRAWAL else self.amount

    @property
    def timestamp(self) -> int:
        return day_to_ts(self.date)


@dataclass(frozen=True)
class AlignedSeries:
    values: list[Point] = field(default_factory=list)
    deposits: list[Point] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.values)

    @property
    def timestamps(self) -> list[int]:
        return [ts for ts, _ in self.values]

    def is_empty(self) -> bool:
        return not self.values


# ----------------------------
# Date helpers (UTC)
# ----------------------------

def ts_to_day(ts: int) -> date:
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).date()


def timestamp_in_range(ts: Any) -> bool:
    """True when ``ts`` converts to a calendar date on this platform."""
    try:
        ts_to_day(ts)
    except (OverflowError, ValueError, OSError, TypeError):
        return False
    return True


def day_to_ts(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp())


def parse_day(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).date() if value.tzinfo else value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_timestamp(value: Any) -> Optional[int]:
    """Unix seconds from an epoch number or an ISO-8601 string (naive strings are UTC)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(dt.timestamp())
    if isinstance(value, date):
        return day_to_ts(value)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def as_finite(value: Any, default: Optional[float] = None) -> Optional[float]:
    if value is None:
        return default
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


# ----------------------------
# Row parsing
# ----------------------------

def valuation_from_row(row: dict[str, Any]) -> Optional[ValuationPoint]:
    """Build a point from an ``account_value`` row; ``None`` for malformed rows."""
    ts = parse_timestamp(row.get("date_time", row.get("timestamp")))
    gross = as_finite(row.get("amount", row.get("gross_value")))
    fee = as_finite(row.get("total_fee", row.get("fee")), default=0.0)
    if ts is None or gross is None or fee is None:
        return None
    return ValuationPoint(timestamp=ts, gross_value=gross, fee=fee)


def cash_flow_from_row(row: dict[str, Any]) -> Optional[CashFlowEvent]:
    """Build an event from an ``account_history`` row; ``None`` for malformed rows."""
    day = parse_day(row.get("date"))
    amount = as_finite(row.get("amount"))
    raw_kind = str(row.get("event") or row.get("kind") or "").strip().lower()
    if day is None or amount is None or amount < 0:
        return None
    try:
        kind = FlowKind(raw_kind)
    except ValueError:
        return None
    return CashFlowEvent(date=day, kind=kind, amount=amount)


def _clean_values(values: Iterable[ValuationPoint]) -> list[ValuationPoint]:
    by_ts: dict[int, ValuationPoint] = {}
    for point in values:
        ts = as_finite(point.timestamp)
        gross = as_finite(point.gross_value)
        fee = as_finite(point.fee, default=0.0)
        if ts is None or gross is None or fee is None or not timestamp_in_range(ts):
            continue
        # later rows replace earlier ones with the same timestamp
        by_ts[int(ts)] = ValuationPoint(timestamp=int(ts), gross_value=gross, fee=fee)
    return [by_ts[ts] for ts in sorted(by_ts)]


def net_series(values: Iterable[ValuationPoint]) -> list[Point]:
    """Sorted, de-duplicated ``(timestamp, gross - fee)`` points."""
    return [(p.timestamp, p.net_value) for p in _clean_values(values)]


def _clean_flows(flows: Iterable[CashFlowEvent]) -> list[CashFlowEvent]:
    out = [f for f in flows if as_finite(f.amount) is not None and isinstance(f.date, date)]
    return sorted(out, key=lambda f: f.date)


def bucket_flows(flows: Iterable[CashFlowEvent], policy: WeekPolicy = DEFAULT_POLICY) -> dict[date, float]:
    buckets: dict[date, float] = {}
    for flow in flows:
        key = policy.period_end(flow.date)
        buckets[key] = buckets.get(key, 0.0) + flow.signed_amount
    return buckets


def align(
    values: Iterable[ValuationPoint],
    flows: Iterable[CashFlowEvent],
    window_start: Optional[date] = None,
    policy: WeekPolicy = DEFAULT_POLICY,
) -> AlignedSeries:
    """Pair every valuation with the cumulative net deposits visible at that snapshot.

    ``window_start`` is the first day of the requested chart range; a deposit
    made inside the range but before the first snapshot is synthesized as a
    leading point so the chart starts at the money that went in.
    """
    points = _clean_values(values)
    if not points:
        return AlignedSeries()
    events = _clean_flows(flows)
    buckets = bucket_flows(events, policy)

    first_key = policy.period_end(ts_to_day(points[0].timestamp))
    cumulative = sum(amount for key, amount in buckets.items() if key < first_key)

    value_series: list[Point] = []
    deposit_series: list[Point] = []
    consumed: set[date] = set()
    for point in points:
        day = ts_to_day(point.timestamp)
        if day not in consumed and day >= first_key:
            cumulative += buckets.get(day, 0.0)
            consumed.add(day)
        value_series.append((point.timestamp, point.net_value))
        deposit_series.append((point.timestamp, cumulative))

    first_deposit = next(
        (
            e
            for e in events
            if e.kind is FlowKind.DEPOSIT and (window_start is None or e.date >= window_start)
        ),
        None,
    )
    if first_deposit is not None and first_deposit.timestamp < value_series[0][0]:
        at_origin = sum(e.signed_amount for e in events if e.date <= first_deposit.date)
        value_series.insert(0, (first_deposit.timestamp, max(at_origin, 0.0)))
        deposit_series.insert(0, (first_deposit.timestamp, at_origin))

    return AlignedSeries(values=value_series, deposits=deposit_series)


def value_at_or_before(series: Sequence[Point], ts: int) -> Optional[float]:
    best: Optional[Point] = None
    for point in series:
        if point[0] <= ts and (best is None or point[0] > best[0]):
            best = point
    return None if best is None else best[1]


def nearest_point(series: Sequence[Point], target_ts: int, tolerance_seconds: float) -> Optional[Point]:
    """Closest point to ``target_ts`` within the tolerance; ties keep the earlier point."""
    best: Optional[Point] = None
    best_diff = math.inf
    for point in series:
        diff = abs(point[0] - target_ts)
        if diff <= tolerance_seconds and diff < best_diff:
            best = point
            best_diff = diff
    return best
