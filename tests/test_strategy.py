from pathlib import Path

import pytest

from conftest import candle_lines
from replay.simulation import Backtester, build_strategy, load_trader_class, run_strategy

ROOT = Path(__file__).resolve().parents[1]
TRADER_SPEC = "strategies/ma_crossover/trader.py:MovingAverageCrossTrader"


@pytest.fixture
def trader_module():
    cls = load_trader_class(TRADER_SPEC, base_dir=ROOT)
    return cls


class TestLoadTraderClass:
    def test_file_reference(self, trader_module):
        assert trader_module.__name__ == "MovingAverageCrossTrader"

    def test_module_reference(self):
        cls = load_trader_class("replay.simulation:Backtester")
        assert cls is Backtester

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_trader_class("nope.py:Trader", base_dir=tmp_path)

    def test_missing_class(self):
        with pytest.raises(ImportError):
            load_trader_class(TRADER_SPEC.replace("MovingAverageCrossTrader", "Missing"), base_dir=ROOT)

    def test_bad_spec(self):
        with pytest.raises(ValueError):
            load_trader_class("")
        with pytest.raises(ValueError):
            load_trader_class("justaname")


class TestSMA:
    def test_rolling_mean(self):
        cls = load_trader_class("strategies/ma_crossover/trader.py:SMA", base_dir=ROOT)
        sma = cls(3)
        assert sma.update(1.0) == pytest.approx(1.0)
        assert not sma.ready
        sma.update(2.0)
        assert sma.update(3.0) == pytest.approx(2.0)
        assert sma.ready
        assert sma.update(10.0) == pytest.approx(5.0)
        sma.reset()
        assert sma.value == 0.0


class TestMovingAverageCrossTrader:
    def test_rejects_bad_periods(self, trader_module):
        with pytest.raises(ValueError):
            trader_module(symbol="SAMPLE", params={"fast_period": 5, "slow_period": 5})

    def test_reverses_on_crossover(self, write_csv, make_config, trader_module):
        closes = [10.0, 10.0, 10.0, 11.0, 12.0, 13.0, 12.0, 10.0, 8.0, 7.0, 8.0, 10.0, 12.0]
        config = make_config(data_path=write_csv(candle_lines(closes), name="cross.csv"))
        trader = trader_module(symbol="SAMPLE", params={"fast_period": 2, "slow_period": 3, "size": 1.0})
        backtester = Backtester(config)
        result = run_strategy(backtester, trader)

        sides = [signal for _, signal in trader.signals]
        assert sides == ["BUY", "SELL", "BUY"]
        assert result.total_trades == 3
        assert result.open_positions == 0

    def test_build_strategy_from_config(self, make_config):
        config = make_config(
            trader_class=str(ROOT / TRADER_SPEC),
            params={"fast_period": 2, "slow_period": 4},
        )
        strategy = build_strategy(config)
        assert strategy.fast_period == 2
        assert strategy.slow_period == 4
