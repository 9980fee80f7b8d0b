import json
from pathlib import Path

import pytest

from core.market_metadata import format_price, get_price_precision, normalize_symbol
from replay.models import OrderSide, ReplayConfig


class TestReplayConfig:
    def test_defaults(self, candle_csv):
        config = ReplayConfig(data_path=candle_csv)
        assert config.symbol == "SAMPLE"
        assert config.initial_balance == 10_000.0
        assert config.cache_size == 500
        assert config.refill_threshold == 100
        assert config.leverage == 100.0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"initial_balance": 0},
            {"spread": -0.1},
            {"commission_rate": -1},
            {"leverage": 0},
            {"cache_size": 50, "refill_threshold": 50},
            {"refill_threshold": -1},
            {"symbol": "!!"},
        ],
    )
    def test_validation(self, candle_csv, overrides):
        with pytest.raises(ValueError):
            ReplayConfig(data_path=candle_csv, **overrides)

    def test_from_path_resolves_relative_paths(self, tmp_path, candle_csv):
        config_dir = tmp_path / "configs"
        config_dir.mkdir()
        config_path = config_dir / "run.json"
        config_path.write_text(
            json.dumps(
                {
                    "data_path": "../candles.csv",
                    "symbol": "gold",
                    "spread": 0.2,
                    "report_dir": "out",
                    "trader_class": "trader.py:Trader",
                    "params": {"fast_period": 3},
                }
            ),
            encoding="utf-8",
        )
        config = ReplayConfig.from_path(config_path)
        assert config.data_path == candle_csv.resolve()
        assert config.report_dir == (config_dir / "out").resolve()
        assert config.symbol == "XAUUSD"
        assert config.spread == 0.2
        assert config.config_dir == config_dir
        assert config.params == {"fast_period": 3}

    def test_from_dict_requires_data_path(self):
        with pytest.raises(ValueError):
            ReplayConfig.from_dict({"symbol": "SAMPLE"})
        with pytest.raises(ValueError):
            ReplayConfig.from_dict(["not", "a", "mapping"])

    def test_round_trip(self, candle_csv):
        config = ReplayConfig(data_path=candle_csv, spread=0.5, params={"size": 2})
        again = ReplayConfig.from_dict(config.to_dict())
        assert again.to_dict() == config.to_dict()
        assert isinstance(again.data_path, Path)


class TestSymbols:
    @pytest.mark.parametrize(
        "raw,expected",
        [("eurusd", "EURUSD"), ("eur/usd", "EURUSD"), ("gold", "XAUUSD"), ("btc-usd", "BTCUSD")],
    )
    def test_normalize(self, raw, expected):
        assert normalize_symbol(raw) == expected

    def test_blank_symbol(self):
        with pytest.raises(ValueError):
            normalize_symbol("  ")

    def test_precision(self):
        assert get_price_precision("USDJPY") == 3
        assert get_price_precision("XAUUSD") == 2
        assert get_price_precision("EURUSD") == 5
        assert format_price("XAUUSD", 2034.5) == "2,034.50"

    def test_order_side_aliases(self):
        assert OrderSide.from_value("long") is OrderSide.BUY
        assert OrderSide.from_value("SHORT") is OrderSide.SELL
        with pytest.raises(ValueError):
            OrderSide.from_value("flat")
