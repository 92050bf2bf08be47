from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from .db import with_conn
from .services import wallet

LOGGER = logging.getLogger(__name__)

DEMO_ACCOUNT = "demo-vault"
DEMO_WEEKS = 16
DEMO_START_VALUE = 10_000.0
DEMO_WEEKLY_RETURN = 0.004
DEMO_FEE_RATE = 0.001


def _has_rows(account: str) -> bool:
    def _run(conn):
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) AS n FROM account_value WHERE LOWER(account) = LOWER(?)", (account,))
        row = cur.fetchone() or {}
        return int(row.get("n") or 0) > 0

    return with_conn(_run)


def demo_rows(end: date, weeks: int = DEMO_WEEKS) -> tuple[list[tuple[str, float, float]], list[tuple[str, str, float]]]:
    """Weekly snapshots ending on ``end`` plus a handful of deposits and one withdrawal."""
    start = end - timedelta(days=7 * weeks)
    flows: list[tuple[str, str, float]] = [(start.isoformat(), "deposit", DEMO_START_VALUE)]
    extra = {
        4: ("deposit", 2_500.0),
        9: ("withdrawal", 1_000.0),
        13: ("deposit", 1_500.0),
    }
    values: list[tuple[str, float, float]] = []
    value = DEMO_START_VALUE
    for week in range(weeks + 1):
        day = start + timedelta(days=7 * week)
        if week in extra:
            event, amount = extra[week]
            flows.append(((day - timedelta(days=2)).isoformat(), event, amount))
            value += amount if event == "deposit" else -amount
        if week:
            value *= 1 + DEMO_WEEKLY_RETURN
        stamp = datetime.combine(day, time(0, 0), tzinfo=timezone.utc).isoformat()
        values.append((stamp, round(value, 2), round(value * DEMO_FEE_RATE, 2)))
    return values, flows


def seed_demo_wallet(account: str = DEMO_ACCOUNT, end: date | None = None) -> int:
    anchor = wallet.policy().last_anchor(end or wallet.today_utc())
    values, flows = demo_rows(anchor)
    for stamp, amount, fee in values:
        wallet.record_valuation(account, stamp, amount, fee)
    for day, event, amount in flows:
        wallet.record_cash_flow(account, day, event, amount, exchange="drift", notes="demo")
    return len(values)


def seed_demo_wallet_if_empty() -> None:
    """Populate a demo vault account for local runs; skipped when it already has snapshots."""
    try:
        if _has_rows(DEMO_ACCOUNT):
            return
        count = seed_demo_wallet()
        LOGGER.info("Seeded %d demo snapshots for %s", count, DEMO_ACCOUNT)
    except Exception as exc:
        LOGGER.exception("Demo seed failed: %s", exc)
