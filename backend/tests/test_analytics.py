from __future__ import annotations

import math
from datetime import date

import pytest

from backend.app.analytics import (
    annualize,
    apy_summary,
    average_annualized_return,
    format_pct,
    format_pct_or_dash,
    format_usd,
    modified_dietz_return,
    pct_from_deposits,
    range_change_percent,
    range_change_ratio_difference,
    weekly_returns,
)
from backend.app.timeseries import AlignedSeries, CashFlowEvent, FlowKind, day_to_ts

DAY = 86_400
WEEK = 7 * DAY
T0 = day_to_ts(date(2024, 1, 14))
AS_OF = date(2024, 1, 24)


def _weekly_annualized(r: float) -> float:
    return (1 + r) ** (365 / 7) - 1


class TestModifiedDietz:
    def test_zero_flows_is_simple_return(self):
        for start, end in [(1000.0, 1100.0), (250.0, 200.0), (1.0, 3.5)]:
            assert modified_dietz_return(start, end, T0, T0 + WEEK, []) == pytest.approx((end - start) / start)

    def test_late_deposit_beats_early_deposit(self):
        early = modified_dietz_return(1000, 1200, T0, T0 + WEEK, [(T0, 100)])
        late = modified_dietz_return(1000, 1200, T0, T0 + WEEK, [(T0 + WEEK - 1, 100)])
        assert early == pytest.approx(100 / 1100)
        assert late > early

    def test_zero_start_without_flows_is_nan(self):
        assert math.isnan(modified_dietz_return(0.0, 100.0, T0, T0 + WEEK, []))

    def test_near_zero_denominator_is_nan(self):
        assert math.isnan(modified_dietz_return(1e-12, 5.0, T0, T0 + WEEK, []))

    def test_mid_week_deposit(self):
        r = modified_dietz_return(1000, 1070, T0, T0 + WEEK, [(T0 + 3 * DAY, 50)])
        assert r == pytest.approx(20 / (1000 + 50 * (1 - 3 / 7)))
        assert r == pytest.approx(0.019444, abs=1e-6)

    def test_flows_outside_period_are_ignored(self):
        flows = [(T0 - DAY, 500), (T0 + WEEK + DAY, 500)]
        assert modified_dietz_return(1000, 1100, T0, T0 + WEEK, flows) == pytest.approx(0.1)

    def test_zero_length_period(self):
        assert modified_dietz_return(1000, 1010, T0, T0, [(T0, 10)]) == pytest.approx(0.0)

    def test_unusable_flow_rows_are_dropped(self):
        flows = [(math.nan, 50.0), (math.inf, 5.0), (10**20, 5.0), (T0 + DAY, math.nan), ("later", 1.0)]
        assert modified_dietz_return(1000, 1100, T0, T0 + WEEK, flows) == pytest.approx(0.1)

    def test_accepts_cash_flow_events(self):
        flow = CashFlowEvent(date=date(2024, 1, 17), kind=FlowKind.WITHDRAWAL, amount=50)
        r = modified_dietz_return(1000, 970, T0, T0 + WEEK, [flow])
        assert r == pytest.approx(20 / (1000 - 50 * (1 - 3 / 7)))


class TestAnnualize:
    def test_weekly_compounding(self):
        assert annualize(0.01, 7) == pytest.approx(1.01 ** (365 / 7) - 1)

    def test_undefined_inputs(self):
        assert math.isnan(annualize(-1.5, 7))
        assert math.isnan(annualize(math.nan, 7))
        assert math.isnan(annualize(0.01, 0))

    def test_overflow_is_infinite(self):
        assert math.isinf(annualize(1e6, 0.001))


class TestAggregator:
    def test_empty_and_single_point(self):
        assert average_annualized_return(4, [], [], as_of=AS_OF) is None
        assert average_annualized_return(4, [(T0, 1000.0)], [], as_of=AS_OF) is None
        assert average_annualized_return(4, AlignedSeries(), [], as_of=AS_OF) is None

    def test_single_week(self):
        series = [(T0, 1000.0), (T0 + WEEK, 1010.0)]
        assert average_annualized_return(1, series, [], as_of=AS_OF) == pytest.approx(_weekly_annualized(0.01))

    def test_end_to_end_week_with_deposit(self):
        series = [(T0, 1000.0), (T0 + WEEK, 1070.0)]
        flows = [(T0 + 3 * DAY, 50.0)]
        estimates = weekly_returns(1, series, flows, as_of=date(2024, 1, 21))
        assert len(estimates) == 1
        assert estimates[0].period_return == pytest.approx(20 / (1000 + 50 * (1 - 3 / 7)))
        assert estimates[0].days == pytest.approx(7)

    def test_flow_on_start_boundary_is_excluded(self):
        series = [(T0, 1000.0), (T0 + WEEK, 1070.0)]
        estimates = weekly_returns(1, series, [(T0, 50.0)], as_of=AS_OF)
        assert estimates[0].period_return == pytest.approx(0.07)

    def test_mean_of_weekly_annualized_returns(self):
        series = [(T0 - WEEK, 1000.0), (T0, 1010.0), (T0 + WEEK, 1030.2)]
        expected = (_weekly_annualized(0.01) + _weekly_annualized(0.02)) / 2
        assert average_annualized_return(2, series, [], as_of=AS_OF) == pytest.approx(expected)

    def test_boundaries_matched_within_tolerance(self):
        series = [(T0 + DAY, 1000.0), (T0 + WEEK + 2 * DAY, 1010.0)]
        estimates = weekly_returns(1, series, [], as_of=AS_OF)
        assert len(estimates) == 1
        assert estimates[0].days == pytest.approx(8)

    def test_boundaries_outside_tolerance_are_skipped(self):
        series = [(T0, 1000.0), (T0 + WEEK + 4 * DAY, 1010.0)]
        assert average_annualized_return(1, series, [], as_of=date(2024, 1, 28)) is None
        assert average_annualized_return(1, series, [], as_of=AS_OF) is None

    def test_unusable_flow_rows_do_not_break_averaging(self):
        series = [(T0, 1000.0), (T0 + WEEK, 1010.0)]
        flows = [(math.inf, 5.0), (math.nan, 5.0), (-(10**20), 5.0)]
        assert len(weekly_returns(1, series, flows, as_of=AS_OF)) == 1
        assert average_annualized_return(1, series, flows, as_of=AS_OF) == pytest.approx(_weekly_annualized(0.01))
        assert apy_summary(series, flows, as_of=AS_OF)["7d"] == pytest.approx(_weekly_annualized(0.01))

    def test_missing_week_does_not_drag_average(self):
        # only the most recent of four weeks has both boundary snapshots
        series = [(T0, 1000.0), (T0 + WEEK, 1010.0)]
        assert average_annualized_return(4, series, [], as_of=AS_OF) == pytest.approx(_weekly_annualized(0.01))

    def test_negative_growth_week_is_skipped(self):
        series = [(T0 - WEEK, 1000.0), (T0, -500.0), (T0 + WEEK, -495.0)]
        estimates = weekly_returns(2, series, [], as_of=AS_OF)
        assert len(estimates) == 1
        assert estimates[0].period_return == pytest.approx(-0.01)

    def test_sunday_is_its_own_anchor(self):
        series = [(T0, 1000.0), (T0 + WEEK, 1010.0), (T0 + 2 * WEEK, 1030.2)]
        on_sunday = weekly_returns(1, series, [], as_of=date(2024, 1, 28))
        assert on_sunday[0].period_return == pytest.approx(0.02)

    def test_apy_summary_windows(self):
        series = [(T0 - WEEK, 1000.0), (T0, 1010.0), (T0 + WEEK, 1030.2)]
        out = apy_summary(series, [], as_of=AS_OF)
        assert set(out) == {"7d", "30d", "90d"}
        assert out["7d"] == pytest.approx(_weekly_annualized(0.02))
        assert out["30d"] == pytest.approx(out["90d"])


def _aligned(values, deposits):
    return AlignedSeries(values=[(i * DAY, v) for i, v in enumerate(values)],
                         deposits=[(i * DAY, d) for i, d in enumerate(deposits)])


class TestPercentChange:
    def test_substantial_start_deposits(self):
        assert range_change_percent(_aligned([1000, 1100], [1000, 1000])) == pytest.approx(0.1)

    def test_small_start_deposits_fall_back_to_end_deposits(self):
        # 50 is under the $100 floor
        assert range_change_percent(_aligned([50, 1200], [50, 1100])) == pytest.approx(100 / 1100)

    def test_start_under_tenth_of_end(self):
        assert pct_from_deposits(500, 500, 10_100, 10_000) == pytest.approx(100 / 10_000)

    def test_no_deposits_uses_start_value(self):
        assert range_change_percent(_aligned([200, 250], [0, 0])) == pytest.approx(0.25)

    def test_no_baseline_is_nan(self):
        assert math.isnan(range_change_percent(_aligned([0, 0], [0, 0])))

    def test_too_few_points(self):
        assert math.isnan(range_change_percent(_aligned([1000], [1000])))
        assert math.isnan(range_change_ratio_difference(AlignedSeries()))

    def test_ratio_difference(self):
        assert range_change_ratio_difference(_aligned([1100, 1320], [1000, 1200])) == pytest.approx(0.0)
        assert range_change_ratio_difference(_aligned([1000, 1300], [1000, 1000])) == pytest.approx(0.3)
        assert math.isnan(range_change_ratio_difference(_aligned([10, 20], [0, 5])))

    def test_variants_differ(self):
        aligned = _aligned([1000, 1650], [1000, 1500])
        assert range_change_percent(aligned) == pytest.approx(0.15)
        assert range_change_ratio_difference(aligned) == pytest.approx(0.1)


class TestFormatting:
    def test_pct(self):
        assert format_pct(0.0194) == "+1.94%"
        assert format_pct(-0.05) == "-5.00%"
        assert format_pct_or_dash(None) == "—%"
        assert format_pct_or_dash(math.nan) == "—%"
        assert format_pct_or_dash(0.1) == "+10.00%"

    def test_usd(self):
        assert format_usd(-1234.5) == "-$1,234.50"
        assert format_usd(0) == "$0.00"
        assert format_usd(None) == "$—"
        assert format_usd(math.inf) == "$—"
