import math
from datetime import timedelta

import pytest

from replay import analyzer
from replay.analyzer import (
    CountValue,
    DurationValue,
    MetricCategory,
    MetricKind,
    NumericValue,
    analyze,
)


class TestDrawdown:
    def test_peak_to_trough(self):
        assert analyzer.max_drawdown([100, -200, -100, 300, 50]) == pytest.approx(300.0)

    def test_monotonic_gain_has_no_drawdown(self):
        assert analyzer.max_drawdown([10, 20, 30]) == 0.0

    def test_loss_from_start(self):
        assert analyzer.max_drawdown([-50, -25]) == pytest.approx(75.0)


class TestWinLoss:
    PNLS = [100, -50, 200, -30, 80]

    def test_win_rate(self):
        assert analyzer.win_rate(self.PNLS) == pytest.approx(0.6)

    def test_average_win_and_loss(self):
        assert analyzer.average_win(self.PNLS) == pytest.approx(126.6666667)
        assert analyzer.average_loss(self.PNLS) == pytest.approx(40.0)

    def test_gross_and_extremes(self):
        assert analyzer.gross_profit(self.PNLS) == pytest.approx(380.0)
        assert analyzer.gross_loss(self.PNLS) == pytest.approx(80.0)
        assert analyzer.largest_win(self.PNLS) == pytest.approx(200.0)
        assert analyzer.largest_loss(self.PNLS) == pytest.approx(50.0)
        assert analyzer.profit_factor(self.PNLS) == pytest.approx(4.75)

    def test_streaks(self):
        pnls = [1, 2, -1, 3, 4, 5, -1, -2, 0, -3]
        assert analyzer.max_consecutive_wins(pnls) == 3
        assert analyzer.max_consecutive_losses(pnls) == 2

    def test_risk_reward_and_expected_value(self):
        assert analyzer.risk_reward_ratio(self.PNLS) == pytest.approx(126.6666667 / 40.0)
        assert analyzer.expected_value(self.PNLS) == pytest.approx(60.0)


class TestRiskRatios:
    def test_sample_standard_deviation(self):
        assert analyzer.standard_deviation([1, 2, 3, 4]) == pytest.approx(1.2909944)
        assert analyzer.standard_deviation([5]) == 0.0

    def test_sharpe(self):
        pnls = [1, 2, 3, 4]
        assert analyzer.sharpe_ratio(pnls) == pytest.approx(2.5 / 1.2909944)
        assert analyzer.sharpe_ratio([3, 3, 3]) == 0.0

    def test_sortino_uses_downside_only(self):
        pnls = [10, -2, 6, -4]
        downside = math.sqrt((4 + 16) / 2)
        assert analyzer.sortino_ratio(pnls) == pytest.approx(2.5 / downside)

    def test_sortino_without_losses_is_unbounded(self):
        assert analyzer.sortino_ratio([1, 2, 3]) == math.inf
        assert analyzer.sortino_ratio([0, 0]) == 0.0

    def test_calmar(self):
        pnls = [100, -200, -100, 300, 50]
        assert analyzer.calmar_ratio(pnls) == pytest.approx(150.0 / 300.0)
        assert analyzer.calmar_ratio([5, 5]) == math.inf

    def test_profit_factor_fallbacks(self):
        assert analyzer.profit_factor([5, 10]) == math.inf
        assert analyzer.profit_factor([0, 0]) == 0.0

    def test_value_at_risk(self):
        pnls = [-50, 10, -20, 30, 40, -10, 5, 15, 25, 35]
        assert analyzer.value_at_risk(pnls, 0.05) == pytest.approx(50.0)
        assert analyzer.value_at_risk(pnls, 0.2) == pytest.approx(10.0)
        assert analyzer.value_at_risk(pnls, 1.0) == pytest.approx(40.0)

    def test_total_return(self):
        assert analyzer.total_return([100, -50], 1_000.0) == pytest.approx(5.0)
        assert analyzer.total_return([100], None) == 0.0


class TestEmptyInput:
    @pytest.mark.parametrize(
        "func",
        [
            analyzer.total_pnl,
            analyzer.win_rate,
            analyzer.average_win,
            analyzer.average_loss,
            analyzer.largest_win,
            analyzer.largest_loss,
            analyzer.max_drawdown,
            analyzer.standard_deviation,
            analyzer.sharpe_ratio,
            analyzer.sortino_ratio,
            analyzer.calmar_ratio,
            analyzer.profit_factor,
            analyzer.max_consecutive_wins,
            analyzer.max_consecutive_losses,
            analyzer.expected_value,
            analyzer.risk_reward_ratio,
        ],
    )
    def test_zero(self, func):
        assert func([]) == 0

    def test_analyze_empty(self):
        metrics = analyze([], initial_balance=10_000.0)
        assert len(metrics.metrics) == len(MetricKind)
        assert metrics.value(MetricKind.TOTAL_TRADES) == 0
        assert metrics.value(MetricKind.AVERAGE_HOLDING_PERIOD) == timedelta(0)
        assert metrics.value(MetricKind.VAR_95) == 0.0
        assert metrics.value(MetricKind.TRADING_FREQUENCY) == 0.0


class TestMetricsSet:
    def test_same_trades_same_metrics(self, make_trades):
        trades = make_trades([100, -50, 200, -30, 80])
        first, second = analyze(trades, initial_balance=1_000.0), analyze(trades, initial_balance=1_000.0)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_values_are_tagged(self, make_trades):
        metrics = analyze(make_trades([100, -50, 200, -30, 80]), initial_balance=1_000.0)
        assert isinstance(metrics.get(MetricKind.WIN_RATE).value, NumericValue)
        assert isinstance(metrics.get(MetricKind.TOTAL_TRADES).value, CountValue)
        assert isinstance(metrics.get(MetricKind.AVERAGE_HOLDING_PERIOD).value, DurationValue)
        assert metrics.value(MetricKind.WIN_RATE) == pytest.approx(0.6)
        assert metrics.value(MetricKind.WINNING_TRADES) == 3
        assert metrics.value(MetricKind.LOSING_TRADES) == 2
        assert metrics.value(MetricKind.MAX_DRAWDOWN) == pytest.approx(50.0)
        assert metrics.value(MetricKind.TOTAL_RETURN) == pytest.approx(30.0)
        assert metrics.value(MetricKind.AVERAGE_HOLDING_PERIOD) == timedelta(minutes=60)

    def test_trading_frequency(self, make_trades):
        # opens hourly from 00:00, last close at 04:00 + 60 minutes
        trades = make_trades([1, 1, 1, 1, 1])
        assert analyzer.trading_frequency(trades) == pytest.approx(5 / (5 / 24))

    def test_category_filters(self, make_trades):
        metrics = analyze(make_trades([10, -5]))
        basic = metrics.basic()
        risk = metrics.risk()
        trading = metrics.trading()
        assert MetricKind.TOTAL_PNL in basic
        assert MetricKind.MAX_DRAWDOWN in basic and MetricKind.MAX_DRAWDOWN in risk
        assert MetricKind.SORTINO_RATIO in risk and MetricKind.SORTINO_RATIO not in basic
        assert MetricKind.EXPECTED_VALUE in trading
        assert MetricKind.GROSS_PROFIT not in basic | risk | trading
        assert MetricCategory.RISK in MetricKind.VAR_99.categories

    def test_to_dict_serializes_infinity(self, make_trades):
        payload = analyze(make_trades([10, 20])).to_dict()
        assert payload["profit_factor"] == "inf"
        assert payload["total_trades"] == 2
        assert payload["average_holding_period"] == 3600.0

    def test_every_kind_has_unit_and_description(self):
        for kind in MetricKind:
            assert kind.unit
            assert kind.description
