import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..analytics import (
    APY_WINDOWS,
    apy_summary,
    average_annualized_return,
    finite_or_none,
    range_change_percent,
    range_change_ratio_difference,
)
from ..config import settings
from ..db import with_conn
from ..fees import apply_fees, performance_fee_schedule
from ..timeseries import (
    CashFlowEvent,
    FlowKind,
    ValuationPoint,
    WeekPolicy,
    align,
    cash_flow_from_row,
    ts_to_day,
    valuation_from_row,
)
from .cache import cache, invalidate_wallet, wallet_cache_key

logger = logging.getLogger(__name__)

PERIOD_DAYS = {
    "30D": 30,
    "365D": 365,
}
DEFAULT_PAGE_SIZE = 25


# ----------------------------
# Basic helpers
# ----------------------------

def policy() -> WeekPolicy:
    return WeekPolicy(
        anchor_weekday=settings.performance.anchor_weekday,
        bucket_days=settings.performance.bucket_days,
    )


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def _account_key(account: Optional[str]) -> str:
    raw = (account or "").strip()
    if not raw:
        raise ValueError("missing account")
    return raw


def _period_days(period: str) -> int:
    key = (period or "").strip().upper()
    if key not in PERIOD_DAYS:
        raise ValueError(f"Unknown period: {period}. Use one of {', '.join(PERIOD_DAYS)}.")
    return PERIOD_DAYS[key]


# ----------------------------
# Reads
# ----------------------------

def fetch_value_rows(account: str, start: Optional[str] = None, end_before: Optional[str] = None) -> List[Dict[str, Any]]:
    """account_value rows, oldest first. ``end_before`` is exclusive."""
    label = _account_key(account)
    where = ["LOWER(account) = LOWER(?)"]
    params: List[Any] = [label]
    if start:
        where.append("date_time >= ?")
        params.append(start)
    if end_before:
        where.append("date_time < ?")
        params.append(end_before)

    def _run(conn):
        cur = conn.cursor()
        cur.execute(
            f"SELECT date_time, amount, total_fee FROM account_value WHERE {' AND '.join(where)} ORDER BY date_time ASC",
            params,
        )
        return cur.fetchall()

    return with_conn(_run)


def fetch_history_rows(account: str, start: Optional[str] = None, end: Optional[str] = None) -> List[Dict[str, Any]]:
    """account_history rows, oldest first. Both bounds are inclusive calendar days."""
    label = _account_key(account)
    where = ["LOWER(account) = LOWER(?)"]
    params: List[Any] = [label]
    if start:
        where.append("date >= ?")
        params.append(start)
    if end:
        where.append("date <= ?")
        params.append(end)

    def _run(conn):
        cur = conn.cursor()
        cur.execute(
            f"SELECT date, event, amount FROM account_history WHERE {' AND '.join(where)} ORDER BY date ASC, id ASC",
            params,
        )
        return cur.fetchall()

    return with_conn(_run)


def load_valuations(account: str, start: Optional[str] = None, end_before: Optional[str] = None) -> List[ValuationPoint]:
    rows = fetch_value_rows(account, start=start, end_before=end_before)
    points = [p for p in (valuation_from_row(r) for r in rows) if p is not None]
    if len(points) != len(rows):
        logger.debug("Dropped %d malformed account_value rows for %s", len(rows) - len(points), account)
    return points


def load_cash_flows(account: str, start: Optional[str] = None, end: Optional[str] = None) -> List[CashFlowEvent]:
    rows = fetch_history_rows(account, start=start, end=end)
    events = [e for e in (cash_flow_from_row(r) for r in rows) if e is not None]
    if len(events) != len(rows):
        logger.debug("Dropped %d non deposit/withdrawal history rows for %s", len(rows) - len(events), account)
    return events


# ----------------------------
# Chart
# ----------------------------

def get_chart(account: str, period: str = "30D", as_of: Optional[date] = None) -> Dict[str, Any]:
    days = _period_days(period)
    today = as_of or today_utc()
    week_policy = policy()
    anchor = week_policy.last_anchor(today)
    cutoff = today - timedelta(days=days)

    points = load_valuations(
        account,
        start=cutoff.isoformat(),
        end_before=(anchor + timedelta(days=1)).isoformat(),
    )
    flows: List[CashFlowEvent] = []
    if points:
        # all history up to the last snapshot so pre-window flows land in the baseline
        last_day = ts_to_day(max(p.timestamp for p in points))
        flows = load_cash_flows(account, end=last_day.isoformat())
    aligned = align(points, flows, window_start=cutoff, policy=week_policy)

    return {
        "account": account,
        "period": period.upper(),
        "values": [{"ts": ts, "value": value} for ts, value in aligned.values],
        "deposits": [{"ts": ts, "value": value} for ts, value in aligned.deposits],
        "change_pct": finite_or_none(range_change_percent(aligned)),
        "change_ratio_diff": finite_or_none(range_change_ratio_difference(aligned)),
    }


# ----------------------------
# APY
# ----------------------------

def _apy_inputs(account: str, weeks: int, anchor: date) -> Tuple[List[Tuple[int, float]], List[CashFlowEvent]]:
    bucket_days = settings.performance.bucket_days
    # one extra period of buffer before the oldest window start
    cutoff = anchor - timedelta(days=bucket_days * (int(weeks) + 1))
    points = load_valuations(account, start=cutoff.isoformat())
    flows = load_cash_flows(account, start=cutoff.isoformat())
    return apply_fees(points), flows


def get_apy(account: str, weeks: int, as_of: Optional[date] = None) -> Optional[float]:
    if weeks < 1:
        raise ValueError("weeks must be >= 1")
    today = as_of or today_utc()
    week_policy = policy()
    values, flows = _apy_inputs(account, weeks, week_policy.last_anchor(today))
    result = average_annualized_return(
        weeks,
        values,
        flows,
        as_of=today,
        policy=week_policy,
        tolerance_days=settings.performance.tolerance_days,
    )
    return finite_or_none(result)


# ----------------------------
# Overview
# ----------------------------

def deposit_totals(account: str, as_of: Optional[date] = None) -> Dict[str, float]:
    """Net deposits settled by the last anchor day, and those still pending after it."""
    anchor = policy().last_anchor(as_of or today_utc())
    settled = 0.0
    pending = 0.0
    for event in load_cash_flows(account):
        if event.date <= anchor:
            settled += event.signed_amount
        else:
            pending += event.signed_amount
    return {"total_deposits": settled, "pending_deposits": pending}


def current_value(account: str, as_of: Optional[date] = None) -> Optional[float]:
    anchor = policy().last_anchor(as_of or today_utc())
    series = apply_fees(load_valuations(account, end_before=(anchor + timedelta(days=1)).isoformat()))
    if not series:
        return None
    return series[-1][1]


def get_overview(account: str, as_of: Optional[date] = None) -> Dict[str, Any]:
    today = as_of or today_utc()
    week_policy = policy()
    anchor = week_policy.last_anchor(today)
    cache_key = wallet_cache_key(account, f"overview:{today.isoformat()}")
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    totals = deposit_totals(account, as_of=today)
    value = current_value(account, as_of=today)
    values, flows = _apy_inputs(account, max(APY_WINDOWS.values()), anchor)
    apys = apy_summary(
        values,
        flows,
        as_of=today,
        policy=week_policy,
        tolerance_days=settings.performance.tolerance_days,
    )
    total_return = value - totals["total_deposits"] if value is not None else None

    out = {
        "account": account,
        "as_of": anchor.isoformat(),
        "current_value": value,
        "total_deposits": totals["total_deposits"],
        "pending_deposits": totals["pending_deposits"],
        "total_return": total_return,
        "apy_7d": finite_or_none(apys["7d"]),
        "apy_30d": finite_or_none(apys["30d"]),
        "apy_90d": finite_or_none(apys["90d"]),
    }
    cache.set(cache_key, out)
    return out


# ----------------------------
# History / details / fees
# ----------------------------

def get_history(account: str, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    label = _account_key(account)
    page = max(1, int(page))
    page_size = max(1, min(int(page_size), 500))
    offset = (page - 1) * page_size

    def _run(conn):
        cur = conn.cursor()
        cur.execute(
            """
            SELECT date, event, amount, exchange, notes, sub_account
            FROM account_history
            WHERE LOWER(account) = LOWER(?)
            ORDER BY date DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            (label, page_size, offset),
        )
        return cur.fetchall()

    rows = with_conn(_run)
    entries = [
        {
            "date": str(r.get("date") or ""),
            "event": str(r.get("event") or "").strip().lower(),
            "amount": float(r.get("amount") or 0.0),
            "exchange": r.get("exchange"),
            "notes": r.get("notes"),
            "sub_account": r.get("sub_account"),
        }
        for r in rows
    ]
    return {"account": account, "page": page, "page_size": page_size, "rows": entries}


def get_details(account: str) -> Dict[str, Any]:
    return {"account": _account_key(account), "profit_share": settings.performance.profit_share}


def get_fee_schedule(account: str, rate: Optional[float] = None) -> List[Dict[str, Any]]:
    share = settings.performance.profit_share if rate is None else float(rate)
    frame = performance_fee_schedule(load_valuations(account), load_cash_flows(account), share)
    return frame.to_dict(orient="records")


# ----------------------------
# Writes
# ----------------------------

def record_valuation(account: str, date_time: str, amount: float, total_fee: float = 0.0) -> None:
    label = _account_key(account)

    def _run(conn):
        cur = conn.cursor()
        cur.execute(
            "INSERT OR REPLACE INTO account_value(account, date_time, amount, total_fee) VALUES(?,?,?,?)",
            (label, date_time, float(amount), float(total_fee or 0.0)),
        )
        conn.commit()

    with_conn(_run)
    invalidate_wallet(label)


def record_cash_flow(
    account: str,
    day: str,
    event: str,
    amount: float,
    exchange: Optional[str] = None,
    notes: Optional[str] = None,
    sub_account: Optional[str] = None,
) -> None:
    label = _account_key(account)
    kind = FlowKind((event or "").strip().lower())
    amount = float(amount)
    if not math.isfinite(amount) or amount < 0:
        raise ValueError(f"{kind.value} amount must be a non-negative number")

    def _run(conn):
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO account_history(account, date, event, amount, exchange, notes, sub_account)
            VALUES(?,?,?,?,?,?,?)
            """,
            (label, day, kind.value, float(amount), exchange, notes, sub_account),
        )
        conn.commit()

    with_conn(_run)
    invalidate_wallet(label)
