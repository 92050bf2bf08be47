from __future__ import annotations

from typing import Iterable

import pandas as pd

from .timeseries import CashFlowEvent, ValuationPoint, net_series, ts_to_day

FEE_COLUMNS = ["date", "gross", "net_flow", "gain", "fee", "cumulative_fee"]


def net_value(gross: float, fee: float | None = None) -> float:
    return float(gross) - float(fee or 0.0)


def apply_fees(values: Iterable[ValuationPoint]) -> list[tuple[int, float]]:
    """Valuations with accrued fees taken out, ready for alignment."""
    return net_series(values)


def performance_fee_schedule(
    values: Iterable[ValuationPoint],
    flows: Iterable[CashFlowEvent],
    rate: float,
) -> pd.DataFrame:
    """Profit-share fee owed on each snapshot's gain over the previous one.

    Gains are measured on gross value net of deposits/withdrawals dated after
    the previous snapshot day and on or before the current one. Losses carry
    no fee and are not netted against later gains.
    """
    points = sorted({p.timestamp: p for p in values}.values(), key=lambda p: p.timestamp)
    events = list(flows)
    rows = []
    last_amount = 0.0
    last_day = None
    cumulative = 0.0
    for point in points:
        day = ts_to_day(point.timestamp)
        if last_day is None:
            window = [e for e in events if e.date <= day]
        else:
            window = [e for e in events if last_day < e.date <= day]
        net_flow = sum(e.signed_amount for e in window)
        amount = float(point.gross_value)
        if last_day is None:
            gain = max(0.0, amount - net_flow)
        else:
            gain = amount - last_amount - net_flow
        fee = gain * rate if gain > 0 else 0.0
        cumulative += fee
        rows.append(
            {
                "date": day.isoformat(),
                "gross": amount,
                "net_flow": net_flow,
                "gain": gain,
                "fee": fee,
                "cumulative_fee": cumulative,
            }
        )
        last_amount = amount
        last_day = day
    return pd.DataFrame(rows, columns=FEE_COLUMNS)
