from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Dict

from ohlc_engine.utils.logger import get_logger, log_data_integrity


@dataclass(frozen=True)
class RollingOHLC:
    """
    Immutable rolling OHLC snapshot for one ticker.

    Computed over the trailing window ending at the tick just processed:
        - open / close            : first / last price in the window
        - high / low              : extrema over the window
        - timestamp_start / _end  : first / last tick timestamp in the window (epoch ms)
    """

    ticker: str | None = None
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    close: float = 0.0
    timestamp_start: int = 0
    timestamp_end: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Output record. `low` stays a bare number; `timestamp_start` is internal."""
        out: Dict[str, Any] = {}
        if self.ticker is not None:
            out["symbol"] = self.ticker
        out["open"] = _fixed6(self.open)
        out["high"] = _fixed6(self.high)
        out["low"] = self.low
        out["close"] = _fixed6(self.close)
        out["timestamp"] = self.timestamp_end
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


def _fixed6(value: float) -> str:
    return f"{value:.6f}"


# NaN entries are skipped; an all-NaN window gives -inf / +inf
def _nan_max(values: list[float]) -> float:
    return max((v for v in values if not math.isnan(v)), default=-math.inf)


def _nan_min(values: list[float]) -> float:
    return min((v for v in values if not math.isnan(v)), default=math.inf)


class OHLCState:
    """Price/timestamp history of one ticker plus its latest rolling OHLC.

    `prices` and `timestamps` are parallel, append-ordered lists. With
    `prune_history` the entries before the window start are dropped after
    every update; otherwise the full history is kept.
    """

    def __init__(self, time_frame: int, *, prune_history: bool = False):
        if time_frame <= 0:
            raise ValueError(f"time_frame must be > 0ms, got {time_frame}")
        self.prices: list[float] = []
        self.timestamps: list[int] = []
        self.time_frame = int(time_frame)
        self.prune_history = prune_history
        self.current_rolling_ohlc = RollingOHLC()
        self._logger = get_logger(__name__)

    def add_price_timestamp(self, ticker: str, price: float, timestamp: int) -> RollingOHLC:
        if self.timestamps and timestamp < self.timestamps[-1]:
            log_data_integrity(
                self._logger,
                "ohlc.out_of_order_tick",
                symbol=ticker,
                timestamp=timestamp,
                last_timestamp=self.timestamps[-1],
            )

        self.prices.append(price)
        self.timestamps.append(timestamp)

        # ints are unbounded here, so a negative threshold simply admits everything
        threshold = timestamp - self.time_frame
        start = next((i for i, ts in enumerate(self.timestamps) if ts > threshold), 0)

        window = self.prices[start:]
        self.current_rolling_ohlc = RollingOHLC(
            ticker=ticker,
            open=window[0],
            high=_nan_max(window),
            low=_nan_min(window),
            close=window[-1],
            timestamp_start=self.timestamps[start],
            timestamp_end=self.timestamps[-1],
        )

        if self.prune_history and start > 0:
            del self.prices[:start]
            del self.timestamps[:start]

        return self.current_rolling_ohlc

    def get_current_ohlcv(self) -> RollingOHLC:
        return self.current_rolling_ohlc

    def __len__(self) -> int:
        return len(self.prices)
