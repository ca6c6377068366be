from __future__ import annotations

import asyncio
from pathlib import Path

from tqdm import tqdm

from ohlc_engine.ohlc import RollingOHLC
from ohlc_engine.utils.logger import get_logger, log_debug, log_info


class OHLCFileSink:
    """Consumes rolling OHLCs from a queue and appends them to a text file, one JSON per line.

    A `None` item marks the end of the stream.
    """

    def __init__(self, path: str | Path, *, progress: bool = False, total: int | None = None):
        self.path = Path(path)
        self._progress = progress
        self._total = total
        self._logger = get_logger(f"ohlc_engine.{self.__class__.__name__}")

    async def run(self, queue: asyncio.Queue[RollingOHLC | None]) -> int:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        counter = 0
        bar = tqdm(total=self._total, unit="tick", desc="ohlc", disable=not self._progress)
        try:
            with self.path.open("w", encoding="utf-8") as fh:
                while True:
                    item = await queue.get()
                    if item is None:
                        break
                    counter += 1
                    data = item.to_json()
                    fh.write(data)
                    fh.write("\n")
                    bar.update(1)
                    log_debug(self._logger, "ohlc.sink_write", index=counter, ohlc=data)
        finally:
            bar.close()
        log_info(self._logger, "ohlc.sink_closed", path=self.path, n_written=counter)
        return counter
