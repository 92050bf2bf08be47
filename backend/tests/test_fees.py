from __future__ import annotations

from datetime import date

import pytest

from backend.app.fees import FEE_COLUMNS, apply_fees, net_value, performance_fee_schedule
from backend.app.timeseries import CashFlowEvent, FlowKind, ValuationPoint, day_to_ts


def _vp(day: date, value: float, fee: float = 0.0) -> ValuationPoint:
    return ValuationPoint(timestamp=day_to_ts(day), gross_value=value, fee=fee)


def test_net_value_treats_missing_fee_as_zero():
    assert net_value(1000.0) == 1000.0
    assert net_value(1000.0, None) == 1000.0
    assert net_value(1000.0, 12.5) == 987.5


def test_apply_fees_sorts_and_nets():
    out = apply_fees([_vp(date(2024, 1, 14), 1100, 10), _vp(date(2024, 1, 7), 1000, 5)])
    assert [v for _, v in out] == [995.0, 1090.0]


def test_fee_schedule_weekly_gains():
    values = [
        _vp(date(2024, 1, 7), 1000),
        _vp(date(2024, 1, 14), 1100),
        _vp(date(2024, 1, 21), 1050),
        _vp(date(2024, 1, 28), 1300),
    ]
    flows = [
        CashFlowEvent(date=date(2024, 1, 3), kind=FlowKind.DEPOSIT, amount=1000),
        CashFlowEvent(date=date(2024, 1, 20), kind=FlowKind.DEPOSIT, amount=100),
    ]
    frame = performance_fee_schedule(values, flows, 0.25)

    assert list(frame.columns) == FEE_COLUMNS
    assert list(frame["date"]) == ["2024-01-07", "2024-01-14", "2024-01-21", "2024-01-28"]
    assert list(frame["net_flow"]) == [1000.0, 0.0, 100.0, 0.0]
    assert list(frame["gain"]) == pytest.approx([0.0, 100.0, -150.0, 250.0])
    assert list(frame["fee"]) == pytest.approx([0.0, 25.0, 0.0, 62.5])
    assert frame["cumulative_fee"].iloc[-1] == pytest.approx(87.5)


def test_fee_schedule_withdrawal_counts_against_flow():
    values = [_vp(date(2024, 1, 7), 2000), _vp(date(2024, 1, 14), 1600)]
    flows = [
        CashFlowEvent(date=date(2024, 1, 1), kind=FlowKind.DEPOSIT, amount=2000),
        CashFlowEvent(date=date(2024, 1, 10), kind=FlowKind.WITHDRAWAL, amount=500),
    ]
    frame = performance_fee_schedule(values, flows, 0.2)
    assert list(frame["gain"]) == pytest.approx([0.0, 100.0])
    assert list(frame["fee"]) == pytest.approx([0.0, 20.0])


def test_fee_schedule_empty():
    frame = performance_fee_schedule([], [], 0.25)
    assert frame.empty
    assert list(frame.columns) == FEE_COLUMNS
