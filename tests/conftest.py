from datetime import datetime, timedelta, timezone

import pytest

from replay.models import OrderSide, ReplayConfig, Trade

START = datetime(2024, 1, 1, 0, 0, 0)


def candle_line(ts, close, spread=0.5, volume=100):
    return (
        f"{ts:%Y-%m-%d %H:%M:%S},{close},{close + spread},{close - spread},{close},{volume}"
    )


def candle_lines(closes, start=START, step=timedelta(minutes=1)):
    return [candle_line(start + step * i, close) for i, close in enumerate(closes)]


@pytest.fixture
def write_csv(tmp_path):
    """Write raw lines to a CSV under tmp_path and return its path."""

    def _write(lines, name="candles.csv", header=True):
        path = tmp_path / name
        body = list(lines)
        if header:
            body = ["timestamp,open,high,low,close,volume"] + body
        path.write_text("\n".join(body) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def closes():
    return [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 102.0, 101.0, 100.0, 99.0]


@pytest.fixture
def candle_csv(write_csv, closes):
    return write_csv(candle_lines(closes))


@pytest.fixture
def make_config(candle_csv):
    def _make(**overrides):
        payload = {"data_path": candle_csv, "symbol": "SAMPLE", "initial_balance": 10_000.0}
        payload.update(overrides)
        return ReplayConfig(**payload)

    return _make


@pytest.fixture
def make_trade():
    def _make(pnl, minutes=60, index=0):
        open_time = datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(hours=index)
        return Trade(
            trade_id=f"pos-{index + 1:06d}",
            symbol="SAMPLE",
            side=OrderSide.BUY,
            size=1.0,
            entry_price=100.0,
            exit_price=100.0 + pnl,
            pnl=float(pnl),
            open_time=open_time,
            close_time=open_time + timedelta(minutes=minutes),
            duration=timedelta(minutes=minutes),
        )

    return _make


@pytest.fixture
def make_trades(make_trade):
    def _make(pnls):
        return [make_trade(pnl, index=i) for i, pnl in enumerate(pnls)]

    return _make
