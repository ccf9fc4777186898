"""
Command line interface

    python -m sr_engine calculate BTC 15m
    python -m sr_engine batch --symbols BTC ETH --timeframes 1h 4h
    python -m sr_engine view BTC
    python -m sr_engine monitor
    python -m sr_engine schedule
"""

import argparse
import asyncio
import json
import signal
import sys
from typing import List, Optional

from .config.sr_config import SRConfig, get_config, load_config_from_file
from .data.candle_source import ExchangeCandleSource
from .services.calculation_service import SRCalculationService
from .services.monitor import collect_latest_levels, collect_system_status, format_latest, format_status
from .services.scheduler import BatchScheduler
from .storage.level_store import SQLiteLevelStore
from .support_resistance.detector import format_result
from .types import Symbol, Timeframe
from .utils.exceptions import SREngineException
from .utils.helpers import parse_symbol
from .utils.logger import LogLevel, configure_logging, get_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sr_engine", description="Support/resistance level engine")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--db", help="SQLite database path (overrides configuration)")
    parser.add_argument("--log-level", choices=[level.value for level in LogLevel], help="Log level")
    parser.add_argument("--json", action="store_true", help="Print machine-readable output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    calculate = subparsers.add_parser("calculate", help="Calculate levels for one pair")
    calculate.add_argument("symbol", help="Symbol like BTC")
    calculate.add_argument("timeframe", choices=[t.value for t in Timeframe], help="Candle timeframe")

    batch = subparsers.add_parser("batch", help="Calculate levels for many pairs")
    batch.add_argument("--symbols", nargs="+", help="Symbols (default: configured)")
    batch.add_argument("--timeframes", nargs="+", help="Timeframes (default: configured)")

    view = subparsers.add_parser("view", help="Show the latest valid levels of a symbol")
    view.add_argument("symbol", help="Symbol like BTC")

    monitor = subparsers.add_parser("monitor", help="Show freshness of stored levels")
    monitor.add_argument("--symbols", nargs="+", default=[s.value for s in Symbol], help="Symbols to check")

    subparsers.add_parser("schedule", help="Recalculate on the configured interval until interrupted")

    return parser


def _load_config(args: argparse.Namespace) -> SRConfig:
    config = load_config_from_file(args.config) if args.config else get_config()
    if args.db:
        config.service.database_path = args.db
    if args.log_level:
        config.monitoring.log_level = LogLevel(args.log_level)
    return config


async def _run(args: argparse.Namespace, config: SRConfig) -> int:
    store = SQLiteLevelStore(config.service.database_path)
    try:
        if args.command in ("view", "monitor"):
            return await _report(args, config, store)

        source = ExchangeCandleSource(exchange_id=config.service.exchange_id)
        service = SRCalculationService(source, store, config=config)

        if args.command == "calculate":
            result = await service.calculate_one(args.symbol, args.timeframe)
            print(json.dumps(result.to_dict(), indent=2) if args.json else format_result(result))
            return 0

        if args.command == "batch":
            summary = await service.run_batch(args.symbols, args.timeframes)
            if args.json:
                print(json.dumps(summary.to_dict(), indent=2))
            else:
                print(f"Batch: {summary.success_count}/{summary.total} succeeded")
                for failure in summary.failures:
                    print(f"  FAILED {failure.symbol.value} {failure.timeframe.value}: {failure.message}")
            return 0 if not summary.failures else 1

        scheduler = BatchScheduler(service)
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                pass  # Windows
        await scheduler.run_forever(stop_event)
        return 0
    finally:
        store.close()


async def _report(args: argparse.Namespace, config: SRConfig, store: SQLiteLevelStore) -> int:
    if args.command == "view":
        symbol = parse_symbol(args.symbol)
        results = await collect_latest_levels(store, symbol)
        if args.json:
            print(json.dumps({tf.value: r.to_dict() if r else None for tf, r in results.items()}, indent=2))
        else:
            print(format_latest(symbol, results))
        return 0

    status = await collect_system_status(store, args.symbols, config.service.timeframes)
    print(json.dumps(status.to_dict(), indent=2) if args.json else format_status(status))
    return 0 if status.healthy else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = _load_config(args)

    configure_logging(
        level=config.monitoring.log_level,
        format_type=config.monitoring.log_format,
        log_file=config.monitoring.log_file,
        service_name=config.service_name,
        service_version=config.version,
        environment=config.environment,
    )

    try:
        return asyncio.run(_run(args, config))
    except SREngineException as e:
        get_logger("sr_engine.cli").error("Command failed", command=args.command, **e.to_dict())
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
