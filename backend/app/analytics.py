from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence, Union

import numpy as np

from .timeseries import (
    DEFAULT_POLICY,
    SECONDS_PER_DAY,
    AlignedSeries,
    CashFlowEvent,
    Point,
    WeekPolicy,
    as_finite,
    day_to_ts,
    nearest_point,
    timestamp_in_range,
    value_at_or_before,
)

DAYS_PER_YEAR = 365
DENOMINATOR_EPSILON = 1e-9
DEFAULT_TOLERANCE_DAYS = 3.0

# Label -> number of weekly windows averaged.
APY_WINDOWS = {
    "7d": 1,
    "30d": 4,
    "90d": 12,
}

FlowInput = Union[CashFlowEvent, tuple[int, float]]
SeriesInput = Union[AlignedSeries, Sequence[Point]]


@dataclass(frozen=True)
class ReturnEstimate:
    start_ts: int
    end_ts: int
    period_return: float
    annualized_return: float

    @property
    def days(self) -> float:
        return (self.end_ts - self.start_ts) / SECONDS_PER_DAY


def _flow_points(flows: Iterable[FlowInput]) -> list[tuple[int, float]]:
    """``(timestamp, signed amount)`` pairs; rows with an unusable time or amount are dropped."""
    out: list[tuple[int, float]] = []
    for flow in flows:
        if isinstance(flow, CashFlowEvent):
            ts, amount = flow.timestamp, as_finite(flow.signed_amount)
        else:
            ts, amount = as_finite(flow[0]), as_finite(flow[1])
        if ts is None or amount is None or not timestamp_in_range(ts):
            continue
        out.append((int(ts), amount))
    return out


def _value_points(series: SeriesInput) -> list[Point]:
    if isinstance(series, AlignedSeries):
        return list(series.values)
    return sorted(series, key=lambda p: p[0])


def modified_dietz_return(
    start_value: float,
    end_value: float,
    start_ts: int,
    end_ts: int,
    flows: Iterable[FlowInput],
) -> float:
    """Money-weighted return of one period; NaN when the capital base is ~0.

    Each flow inside ``[start_ts, end_ts]`` counts toward the capital base in
    proportion to the share of the period it was invested for.
    """
    period = max(1, end_ts - start_ts)
    weighted = 0.0
    net = 0.0
    for ts, amount in _flow_points(flows):
        if ts < start_ts or ts > end_ts:
            continue
        weight = 1.0 - (ts - start_ts) / period
        weighted += amount * max(0.0, min(1.0, weight))
        net += amount
    denominator = start_value + weighted
    if not math.isfinite(denominator) or abs(denominator) < DENOMINATOR_EPSILON:
        return math.nan
    return (end_value - start_value - net) / denominator


def annualize(period_return: float, days: float) -> float:
    """Compound a period return to a 365-day figure; NaN when undefined."""
    if not math.isfinite(period_return) or days <= 0:
        return math.nan
    growth = 1.0 + period_return
    if growth < 0:
        return math.nan
    try:
        return growth ** (DAYS_PER_YEAR / days) - 1.0
    except OverflowError:
        return math.inf


def _as_day(as_of: Optional[Union[date, datetime]]) -> date:
    if as_of is None:
        return datetime.now(timezone.utc).date()
    if isinstance(as_of, datetime):
        return as_of.astimezone(timezone.utc).date() if as_of.tzinfo else as_of.date()
    return as_of


def last_anchor_day(as_of: Optional[Union[date, datetime]] = None, policy: WeekPolicy = DEFAULT_POLICY) -> date:
    return policy.last_anchor(_as_day(as_of))


def weekly_returns(
    weeks: int,
    series: SeriesInput,
    flows: Iterable[FlowInput],
    as_of: Optional[Union[date, datetime]] = None,
    policy: WeekPolicy = DEFAULT_POLICY,
    tolerance_days: float = DEFAULT_TOLERANCE_DAYS,
) -> list[ReturnEstimate]:
    """Annualized Modified Dietz return for each of the last ``weeks`` complete periods.

    Periods whose boundary snapshots are missing, or whose return cannot be
    computed, are left out. Newest period first.
    """
    values = _value_points(series)
    if weeks <= 0 or len(values) < 2:
        return []
    flow_points = _flow_points(flows)
    tolerance = tolerance_days * SECONDS_PER_DAY
    anchor = last_anchor_day(as_of, policy)

    estimates: list[ReturnEstimate] = []
    period_end = anchor
    for _ in range(int(weeks)):
        period_start = period_end - timedelta(days=policy.bucket_days)
        start_point = nearest_point(values, day_to_ts(period_start), tolerance)
        end_point = nearest_point(values, day_to_ts(period_end), tolerance)
        period_end = period_start
        if start_point is None or end_point is None or start_point[0] >= end_point[0]:
            continue
        start_ts, start_value = start_point
        end_ts, end_value = end_point
        in_window = [(ts, amt) for ts, amt in flow_points if start_ts < ts <= end_ts]
        r = modified_dietz_return(start_value, end_value, start_ts, end_ts, in_window)
        if not math.isfinite(r):
            continue
        annualized = annualize(r, (end_ts - start_ts) / SECONDS_PER_DAY)
        if not math.isfinite(annualized):
            continue
        estimates.append(ReturnEstimate(start_ts, end_ts, r, annualized))
    return estimates


def average_annualized_return(
    weeks: int,
    series: SeriesInput,
    flows: Iterable[FlowInput],
    as_of: Optional[Union[date, datetime]] = None,
    policy: WeekPolicy = DEFAULT_POLICY,
    tolerance_days: float = DEFAULT_TOLERANCE_DAYS,
) -> Optional[float]:
    """Mean of the weekly annualized returns; ``None`` when no week is usable."""
    estimates = weekly_returns(weeks, series, flows, as_of=as_of, policy=policy, tolerance_days=tolerance_days)
    if not estimates:
        return None
    return float(np.mean([e.annualized_return for e in estimates]))


def apy_summary(
    series: SeriesInput,
    flows: Iterable[FlowInput],
    as_of: Optional[Union[date, datetime]] = None,
    policy: WeekPolicy = DEFAULT_POLICY,
    tolerance_days: float = DEFAULT_TOLERANCE_DAYS,
) -> dict[str, Optional[float]]:
    flow_list = list(flows)
    return {
        label: average_annualized_return(
            weeks, series, flow_list, as_of=as_of, policy=policy, tolerance_days=tolerance_days
        )
        for label, weeks in APY_WINDOWS.items()
    }


def _range_endpoints(aligned: AlignedSeries) -> Optional[tuple[float, float, float, float]]:
    if len(aligned.values) < 2:
        return None
    ts_min, start_val = aligned.values[0]
    ts_max, end_val = aligned.values[-1]
    dep_start = value_at_or_before(aligned.deposits, ts_min)
    if dep_start is None:
        dep_start = 0.0
    dep_end = value_at_or_before(aligned.deposits, ts_max)
    if dep_end is None:
        dep_end = dep_start
    return start_val, dep_start, end_val, dep_end


def pct_from_deposits(start_val: float, dep_start: float, end_val: float, dep_end: float) -> float:
    net_return = (end_val - start_val) - (dep_end - dep_start)
    # a starting deposit base under $100 or 10% of the final base inflates the ratio
    if abs(dep_start) > max(100.0, abs(dep_end) * 0.1):
        return net_return / dep_start
    if abs(dep_end) > DENOMINATOR_EPSILON:
        return net_return / dep_end
    if abs(start_val) > DENOMINATOR_EPSILON:
        return net_return / start_val
    return math.nan


def range_change_percent(aligned: AlignedSeries) -> float:
    """Headline % change over the whole aligned range, net of deposits."""
    endpoints = _range_endpoints(aligned)
    if endpoints is None:
        return math.nan
    return pct_from_deposits(*endpoints)


def range_change_ratio_difference(aligned: AlignedSeries) -> float:
    """Change in the gain-over-deposits ratio between the range's first and last points."""
    endpoints = _range_endpoints(aligned)
    if endpoints is None:
        return math.nan
    start_val, dep_start, end_val, dep_end = endpoints
    if abs(dep_start) < DENOMINATOR_EPSILON or abs(dep_end) < DENOMINATOR_EPSILON:
        return math.nan
    start_ratio = (start_val - dep_start) / dep_start
    end_ratio = (end_val - dep_end) / dep_end
    return end_ratio - start_ratio


def finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return float(value)


def format_pct(value: float) -> str:
    sign = "+" if value >= 0 else ""
    return f"{sign}{value * 100:.2f}%"


def format_pct_or_dash(value: Optional[float]) -> str:
    if value is None or not math.isfinite(value):
        return "—%"
    return format_pct(value)


def format_usd(value: Optional[float]) -> str:
    if value is None or not math.isfinite(value):
        return "$—"
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"
