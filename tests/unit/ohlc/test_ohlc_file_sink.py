from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from ohlc_engine.ohlc import RollingOHLC
from ohlc_engine.sink import OHLCFileSink


@pytest.mark.asyncio
async def test_sink_writes_one_json_line_per_snapshot(tmp_path: Path) -> None:
    queue: asyncio.Queue[RollingOHLC | None] = asyncio.Queue()
    sink = OHLCFileSink(tmp_path / "out" / "ohlc.txt")
    task = asyncio.create_task(sink.run(queue))

    snaps = [
        RollingOHLC(ticker="A", open=1.0, high=2.0, low=0.5, close=1.5, timestamp_start=1, timestamp_end=10),
        RollingOHLC(ticker="B", open=3.0, high=3.0, low=3.0, close=3.0, timestamp_start=20, timestamp_end=20),
    ]
    for s in snaps:
        queue.put_nowait(s)
    queue.put_nowait(None)

    written = await asyncio.wait_for(task, timeout=1.0)
    assert written == 2
    lines = (tmp_path / "out" / "ohlc.txt").read_text(encoding="utf-8").splitlines()
    assert lines == [s.to_json() for s in snaps]


@pytest.mark.asyncio
async def test_sink_with_no_records_creates_empty_file(tmp_path: Path) -> None:
    queue: asyncio.Queue[RollingOHLC | None] = asyncio.Queue()
    queue.put_nowait(None)
    written = await OHLCFileSink(tmp_path / "empty.txt", progress=True, total=0).run(queue)
    assert written == 0
    assert (tmp_path / "empty.txt").read_text(encoding="utf-8") == ""
