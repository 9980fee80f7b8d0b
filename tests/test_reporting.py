import json

import pandas as pd

from replay.reporting import monthly_breakdown, trades_frame, write_replay_artifacts
from replay.simulation import Backtester, run_strategy


class BuyAndHold:
    def on_step(self, backtester):
        if not backtester.get_positions() and not backtester.get_trade_history():
            backtester.buy("SAMPLE", 1.0)


def test_write_replay_artifacts(tmp_path, make_config):
    config = make_config()
    backtester = Backtester(config)
    result = run_strategy(backtester, BuyAndHold())
    artifacts = write_replay_artifacts(
        result,
        backtester.get_trade_history(),
        backtester.equity_curve(),
        report_dir=tmp_path / "report",
        config=config,
        data_manifest=backtester.provider.describe(),
    )

    paths = artifacts["paths"]
    trades = pd.read_csv(paths["trades_csv"])
    assert len(trades) == 1
    assert trades.loc[0, "open_time"] == "2024-01-01T00:00:00Z"
    equity = pd.read_csv(paths["equity_curve_csv"])
    assert {"balance", "equity", "margin_call"}.issubset(equity.columns)

    summary = json.loads((tmp_path / "report" / "summary.json").read_text(encoding="utf-8"))
    assert summary["result"]["total_trades"] == 1
    assert summary["data_manifest"]["rows"] == 10
    assert summary["by_month"][0]["month"] == "2024-01"

    run_config = json.loads((tmp_path / "report" / "run_config.json").read_text(encoding="utf-8"))
    assert run_config["symbol"] == "SAMPLE"
    assert "# Replay Report" in (tmp_path / "report" / "report.md").read_text(encoding="utf-8")


def test_monthly_breakdown(make_trades):
    frame = trades_frame(make_trades([10, -5, 20]))
    rows = monthly_breakdown(frame)
    assert rows == [
        {"month": "2024-01", "total_trades": 3, "wins": 2, "losses": 1, "pnl": 25.0, "commission": 0.0}
    ]
    assert monthly_breakdown(trades_frame([])) == []
