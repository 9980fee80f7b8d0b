"""CLI for candle replays and candle-file inspection."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

_HERE = Path(__file__).parent
if str(_HERE) not in sys.path:
    sys.path.insert(0, str(_HERE))

from core.errors import ReplayError  # noqa: E402
from core.logging_setup import setup_logging  # noqa: E402
from replay import (  # noqa: E402
    Backtester,
    CandleProvider,
    ReplayConfig,
    build_strategy,
    candles_to_frame,
    run_strategy,
    write_replay_artifacts,
)

DEFAULT_REPORT_DIR = Path("reports/replay_run")


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Candle replay and order-execution simulation CLI")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    parser.add_argument("--log-dir", help="Directory for the rotating log file (default: ./logs)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Replay a candle file through a trader from a JSON config")
    run_parser.add_argument("--config", required=True, help="Path to the replay JSON config")
    run_parser.add_argument("--report-dir", help="Override the report directory from the config")

    inspect_parser = subparsers.add_parser("inspect", help="Index a candle file and print its coverage")
    inspect_parser.add_argument("--data", required=True, help="Candle CSV path")
    inspect_parser.add_argument("--head", type=int, default=0, help="Also print the first N candles")

    return parser.parse_args(argv)


def _run_replay(args: argparse.Namespace) -> int:
    logger = logging.getLogger(__name__)
    config_path = Path(args.config)
    if not config_path.exists():
        logger.error("config does not exist: %s", config_path)
        return 2

    try:
        config = ReplayConfig.from_path(config_path)
        if not config.data_path.exists():
            logger.error("data file does not exist: %s", config.data_path)
            return 4
        backtester = Backtester(config)
        strategy = build_strategy(config)
        result = run_strategy(backtester, strategy)
        report_dir = Path(args.report_dir) if args.report_dir else (config.report_dir or DEFAULT_REPORT_DIR)
        artifacts = write_replay_artifacts(
            result,
            backtester.get_trade_history(),
            backtester.equity_curve(),
            report_dir=report_dir,
            config=config,
            data_manifest=backtester.provider.describe(),
        )
    except (ReplayError, ValueError, OSError, ImportError) as exc:
        logger.error(str(exc))
        return 3

    logger.info("Report dir: %s", artifacts["paths"]["report_dir"])
    logger.info("Final balance: %.2f", result.final_balance)
    logger.info("Closed trades: %s", result.total_trades)
    return 0


def _run_inspect(args: argparse.Namespace) -> int:
    logger = logging.getLogger(__name__)
    data_path = Path(args.data)
    if not data_path.exists():
        logger.error("data file does not exist: %s", data_path)
        return 4

    provider = CandleProvider(data_path)
    try:
        manifest = provider.describe()
        print(json.dumps(manifest, indent=2))
        if args.head > 0 and len(provider):
            last = min(len(provider), args.head) - 1
            print(candles_to_frame(provider.get_candles_by_index(0, last)).to_string(index=False))
    except (ReplayError, OSError) as exc:
        logger.error(str(exc))
        return 3
    return 0


def _run(args: argparse.Namespace) -> int:
    if args.command == "run":
        return _run_replay(args)
    if args.command == "inspect":
        return _run_inspect(args)
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = _parse_args(argv)
    setup_logging(log_level=args.log_level, logs_dir=Path(args.log_dir) if args.log_dir else None)
    raise SystemExit(_run(args))


if __name__ == "__main__":
    main()
