"""Rolling OHLC over a bookTicker file (or a live Binance futures stream).

Examples:
    python apps/run_ohlc.py --in_file data/prices.txt --out_file ohlc_5m
    python apps/run_ohlc.py --live TURBOUSDT --out_file turbo_live --window_ms 60000
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from ingestion.book_ticker.source import BookTickerWebSocketSource
from ohlc_engine.exceptions.core import MissingPricesDataError, OHLCProcessorError
from ohlc_engine.ohlc import RollingOHLC
from ohlc_engine.processor import OHLCProcessor
from ohlc_engine.sink import OHLCFileSink
from ohlc_engine.utils.config import DEFAULT_WINDOW_MS, ProcessorConfig
from ohlc_engine.utils.logger import get_logger, init_logging, log_error, log_info

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_LOG_CONFIG = REPO_ROOT / "configs" / "logging.json"

_LOGGER = get_logger("apps.run_ohlc")


def _make_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rolling OHLC processor (bookTicker NDJSON)")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("-i", "--in_file", help="path to the bookTicker data file")
    src.add_argument("--live", metavar="SYMBOL", help="stream SYMBOL from Binance futures instead of a file")
    parser.add_argument("-o", "--out_file", required=True, help="output base name; records go to <out_file>.txt")
    parser.add_argument("--window_ms", type=int, default=DEFAULT_WINDOW_MS, help="rolling window length (ms)")
    parser.add_argument("--log_config", default=str(DEFAULT_LOG_CONFIG))
    parser.add_argument("--log_profile", default=None, help="profile name inside the logging config")
    parser.add_argument("--progress", action="store_true", default=False)
    return parser


async def _run_file(args: argparse.Namespace, config: ProcessorConfig) -> int:
    processor = await OHLCProcessor.from_config(config).load_prices(args.in_file)
    if not processor.input_data:
        # fail before the sink creates an output file
        raise MissingPricesDataError()

    out_q: asyncio.Queue[RollingOHLC | None] = asyncio.Queue()
    sink = OHLCFileSink(f"{args.out_file}.txt", progress=args.progress, total=len(processor.input_data))
    sink_task = asyncio.create_task(sink.run(out_q))
    try:
        await processor.run(out_q.put_nowait)
    finally:
        out_q.put_nowait(None)
        written = await sink_task
    return written


async def _run_live(args: argparse.Namespace, config: ProcessorConfig) -> int:
    processor = OHLCProcessor.from_config(config)
    source = BookTickerWebSocketSource(symbol=args.live)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            pass

    out_q: asyncio.Queue[RollingOHLC | None] = asyncio.Queue()
    sink = OHLCFileSink(f"{args.out_file}.txt", progress=args.progress)
    sink_task = asyncio.create_task(sink.run(out_q))
    # a dead sink ends the live run
    sink_task.add_done_callback(lambda _t: stop_event.set())
    log_info(_LOGGER, "app.live.connect", url=source.url)
    try:
        await processor.stream(source, out_q.put_nowait, stop_event=stop_event)
    finally:
        out_q.put_nowait(None)
        written = await sink_task
    return written


async def _main(args: argparse.Namespace) -> int:
    config = ProcessorConfig(
        window_ms=args.window_ms,
        prune_history=args.live is not None,
    )
    if args.live is not None:
        return await _run_live(args, config)
    return await _run_file(args, config)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    init_logging(args.log_config, run_id=_make_run_id(), mode=args.log_profile)
    log_info(_LOGGER, "app.start", in_file=args.in_file, live=args.live, out_file=args.out_file)

    try:
        written = asyncio.run(_main(args))
    except ValidationError as exc:
        log_error(_LOGGER, "app.config_error", err=str(exc))
        return 2
    except OHLCProcessorError as exc:
        log_error(_LOGGER, "app.failed", err_type=type(exc).__name__, err=str(exc))
        return 1
    except OSError as exc:
        log_error(_LOGGER, "app.output_error", out_file=args.out_file, err_type=type(exc).__name__, err=str(exc))
        return 1

    log_info(_LOGGER, "app.done", n_written=written)
    return 0


if __name__ == "__main__":
    sys.exit(main())
