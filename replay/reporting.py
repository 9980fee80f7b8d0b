"""Artifact writers for finished replays."""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Iterable, Optional

import pandas as pd

from .models import ReplayConfig, Trade
from .simulation import BacktestResult

TRADE_COLUMNS = [
    "trade_id",
    "symbol",
    "side",
    "size",
    "entry_price",
    "exit_price",
    "pnl",
    "open_time",
    "close_time",
    "duration_minutes",
    "commission",
]


def _json_default(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.isoformat().replace("+00:00", "Z")
    if hasattr(value, "isoformat"):
        try:
            return value.isoformat()
        except TypeError:
            return str(value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (set, tuple)):
        return list(value)
    return str(value)


def trades_frame(trades: Iterable[Trade]) -> pd.DataFrame:
    frame = pd.DataFrame([trade.to_dict() for trade in trades], columns=TRADE_COLUMNS)
    for col in ("open_time", "close_time"):
        frame[col] = pd.to_datetime(frame[col], utc=True)
    return frame


def monthly_breakdown(trades_df: pd.DataFrame) -> list[dict[str, Any]]:
    """Per close-month trade counts and PnL."""
    if trades_df.empty:
        return []

    months = trades_df["close_time"].dt.strftime("%Y-%m")
    rows: list[dict[str, Any]] = []
    for month, grp in trades_df.groupby(months):
        rows.append(
            {
                "month": month,
                "total_trades": int(len(grp)),
                "wins": int((grp["pnl"] > 0).sum()),
                "losses": int((grp["pnl"] < 0).sum()),
                "pnl": float(grp["pnl"].sum()),
                "commission": float(grp["commission"].sum()),
            }
        )

    rows.sort(key=lambda row: row["month"])
    return rows


def _md_value(value: Any) -> str:
    if isinstance(value, float):
        if math.isinf(value):
            return "inf"
        return f"{value:.4f}"
    if value is None:
        return ""
    return str(value)


def _md_table(rows: list[dict[str, Any]], columns: list[str]) -> str:
    if not rows:
        return "_No rows._\n"
    header = "| " + " | ".join(columns) + " |"
    divider = "| " + " | ".join("---" for _ in columns) + " |"
    body = ["| " + " | ".join(_md_value(row.get(col)) for col in columns) + " |" for row in rows]
    return "\n".join([header, divider, *body]) + "\n"


def _write_markdown_report(report_path: Path, summary: dict[str, Any]) -> None:
    result = summary.get("result", {})
    sections: list[str] = ["# Replay Report", ""]
    sections.append(f"- Symbol: `{result.get('symbol')}`")
    sections.append(f"- Start: `{result.get('start_time_utc')}`")
    sections.append(f"- End: `{result.get('end_time_utc')}`")
    sections.append(f"- Initial balance: `{result.get('initial_balance')}`")
    sections.append(f"- Final balance: `{result.get('final_balance')}`")
    sections.append("")
    sections.append("## Metrics")
    sections.append("")
    metric_rows = [{"metric": name, "value": value} for name, value in result.get("metrics", {}).items()]
    sections.append(_md_table(metric_rows, ["metric", "value"]).rstrip())
    sections.append("")
    sections.append("## By Month")
    sections.append("")
    sections.append(
        _md_table(summary.get("by_month", []), ["month", "total_trades", "wins", "losses", "pnl", "commission"]).rstrip()
    )
    sections.append("")
    report_path.write_text("\n".join(sections), encoding="utf-8")


def write_replay_artifacts(
    result: BacktestResult,
    trades: Iterable[Trade],
    equity_curve: pd.DataFrame,
    report_dir: str | Path,
    config: ReplayConfig,
    data_manifest: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Write trade ledger, equity curve, summary and run config under `report_dir`."""
    out_dir = Path(report_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    trades_df = trades_frame(trades)
    summary = {
        "result": result.to_dict(),
        "by_month": monthly_breakdown(trades_df),
        "data_manifest": data_manifest or {},
    }

    trades_path = out_dir / "trades.csv"
    equity_path = out_dir / "equity_curve.csv"
    summary_path = out_dir / "summary.json"
    report_path = out_dir / "report.md"
    run_cfg_path = out_dir / "run_config.json"

    trades_out = trades_df.copy()
    for col in ("open_time", "close_time"):
        trades_out[col] = trades_out[col].dt.strftime("%Y-%m-%dT%H:%M:%SZ")
    trades_out.to_csv(trades_path, index=False)
    equity_curve.to_csv(equity_path, index=False)
    summary_path.write_text(json.dumps(summary, indent=2, default=_json_default), encoding="utf-8")
    run_cfg_path.write_text(json.dumps(config.to_dict(), indent=2, default=_json_default), encoding="utf-8")
    _write_markdown_report(report_path, summary)

    return {
        "summary": summary,
        "paths": {
            "report_dir": str(out_dir),
            "trades_csv": str(trades_path),
            "equity_curve_csv": str(equity_path),
            "summary_json": str(summary_path),
            "report_md": str(report_path),
            "run_config_json": str(run_cfg_path),
        },
    }
