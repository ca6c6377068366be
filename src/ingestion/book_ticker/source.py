from __future__ import annotations

import json
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Iterator

from ingestion.contracts.price_tick import PriceTick, parse_price_line
from ohlc_engine.exceptions.core import OpenDataFileError, ReadDataFileError, ReadMetaError
from ohlc_engine.utils.logger import get_logger, log_data_integrity, log_info

"""bookTicker input boundary.

Sources yield raw NDJSON lines; parsing into `PriceTick` happens either
up-front (`load_price_ticks`, batch) or per item inside the processor
(streaming). Nothing here knows about windows or aggregation.
"""

FUTURES_WS_BASE_URL = "wss://fstream.binance.com/ws"

_logger = get_logger("ingestion.book_ticker")


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def _open(path: Path):
    try:
        fh = path.open("r", encoding="utf-8")
    except OSError as exc:
        raise OpenDataFileError(path, exc) from exc
    try:
        path.stat()
    except OSError as exc:
        fh.close()
        raise ReadMetaError(path, exc) from exc
    return fh


def read_lines(path: str | Path) -> list[str]:
    """Read a text file line by line, keeping line terminators."""
    path = Path(path)
    with _open(path) as fh:
        try:
            return list(fh)
        except (OSError, UnicodeDecodeError) as exc:
            raise ReadDataFileError(path, exc) from exc


def load_price_ticks(lines: Iterable[str]) -> list[PriceTick]:
    """Parse lines into ticks, silently dropping any line that is not a valid record."""
    out: list[PriceTick] = []
    n_lines = 0
    for line in lines:
        n_lines += 1
        tick = parse_price_line(line)
        if tick is not None:
            out.append(tick)
    dropped = n_lines - len(out)
    if dropped:
        log_data_integrity(_logger, "ohlc.lines_dropped", n_lines=n_lines, dropped=dropped)
    log_info(_logger, "ohlc.prices_loaded", n_lines=n_lines, n_ticks=len(out))
    return out


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class BookTickerFileSource:
    """Sync source yielding raw lines from an NDJSON file, lazily."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    def __iter__(self) -> Iterator[str]:
        with _open(self._path) as fh:
            try:
                yield from fh
            except (OSError, UnicodeDecodeError) as exc:
                raise ReadDataFileError(self._path, exc) from exc


class BookTickerWebSocketSource:
    """Binance USD-M futures `<symbol>@bookTicker` stream.

    Frames already carry the e/u/s/b/B/a/A/T/E record format, so they are
    yielded as raw text and parsed downstream like file lines.
    """

    def __init__(self, *, symbol: str, base_url: str = FUTURES_WS_BASE_URL):
        self._symbol = symbol
        self._base_url = base_url.rstrip("/")

    @property
    def url(self) -> str:
        return f"{self._base_url}/{self._symbol.lower()}@bookTicker"

    async def __aiter__(self) -> AsyncIterator[str]:
        import websockets

        async with websockets.connect(self.url) as ws:
            async for msg in ws:
                if isinstance(msg, bytes):
                    msg = msg.decode("utf-8", errors="replace")
                # combined-stream envelope: {"stream": ..., "data": {...}}
                if msg.startswith('{"stream"'):
                    msg = _unwrap_combined(msg)
                    if msg is None:
                        continue
                yield msg


def _unwrap_combined(msg: str) -> str | None:
    try:
        envelope: Any = json.loads(msg)
    except json.JSONDecodeError:
        return None
    data = envelope.get("data") if isinstance(envelope, dict) else None
    if not isinstance(data, dict):
        return None
    return json.dumps(data)
