from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, AsyncIterable, AsyncIterator, Iterable

from ingestion.book_ticker.source import load_price_ticks, read_lines
from ingestion.contracts.price_tick import PriceTick, parse_price_line
from ohlc_engine.actor import EmitFn, Mailbox, OHLCActor, PriceActor
from ohlc_engine.exceptions.core import MissingPricesDataError, TaskJoinError
from ohlc_engine.utils.config import ProcessorConfig
from ohlc_engine.utils.logger import get_logger, log_error, log_pipeline

TickSource = Iterable[Any] | AsyncIterable[Any]


class OHLCProcessor:
    """
    Streams rolling OHLCs for a fixed time frame over a sequence of ticks.

    Two concurrent tasks:
        - submission : one `PriceActor` per tick, strictly sequential; each
                       tick round-trips through the actor before the next
        - aggregation: a single `OHLCActor` owning all per-ticker state

    Every processed tick yields exactly one `emit(rolling_ohlc)` call, in
    input order.
    """

    def __init__(self, timeframe_millis: int, *, prune_history: bool = False):
        if int(timeframe_millis) <= 0:
            raise ValueError(f"timeframe_millis must be > 0, got {timeframe_millis}")
        self.timeframe_millis = int(timeframe_millis)
        self.prune_history = prune_history
        self.input_data: list[PriceTick] = []
        self._logger = get_logger(f"ohlc_engine.{self.__class__.__name__}")

    @classmethod
    def from_config(cls, config: ProcessorConfig) -> "OHLCProcessor":
        return cls(config.window_ms, prune_history=config.prune_history)

    async def load_prices(self, prices_file_path: str | Path) -> "OHLCProcessor":
        """Load ticks from an NDJSON file; malformed lines are dropped."""
        lines = await asyncio.to_thread(read_lines, prices_file_path)
        self.input_data = load_price_ticks(lines)
        return self

    async def run(self, emit: EmitFn) -> None:
        """Process the loaded ticks. Raises `MissingPricesDataError` when none are loaded."""
        if not self.input_data:
            raise MissingPricesDataError()
        mailbox = Mailbox(maxsize=len(self.input_data))
        await self._run_pipeline(self.input_data, mailbox, emit, stop_event=None)

    async def stream(
        self,
        source: TickSource,
        emit: EmitFn,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Process a (possibly unbounded) source of raw lines or `PriceTick`s.

        Setting `stop_event` stops submission before the next tick, even
        while the source is idle; the update in flight always completes.
        """
        await self._run_pipeline(source, Mailbox(), emit, stop_event=stop_event)

    # -------------------------------------------------
    # Pipeline
    # -------------------------------------------------

    async def _run_pipeline(
        self,
        source: TickSource,
        mailbox: Mailbox,
        emit: EmitFn,
        *,
        stop_event: asyncio.Event | None,
    ) -> None:
        log_pipeline(
            self._logger,
            "ohlc.processor_start",
            window_ms=self.timeframe_millis,
            prune_history=self.prune_history,
        )
        actor = OHLCActor(mailbox, self.timeframe_millis, prune_history=self.prune_history)
        actor_task = asyncio.create_task(actor.run(), name="ohlc-actor")
        submit_task = asyncio.create_task(
            self._submit_all(source, mailbox, emit, stop_event),
            name="ohlc-submit",
        )

        actor_result, submit_result = await asyncio.gather(actor_task, submit_task, return_exceptions=True)

        for stage, result in (("aggregation", actor_result), ("submission", submit_result)):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                log_error(
                    self._logger,
                    "ohlc.task_failed",
                    stage=stage,
                    err_type=type(result).__name__,
                    err=str(result),
                )
                raise TaskJoinError(f"{stage} task failed: {result!r}") from result

        log_pipeline(
            self._logger,
            "ohlc.processor_done",
            n_emitted=submit_result,
            n_processed=actor.processed,
            n_tickers=len(actor.price_data),
        )

    async def _submit_all(
        self,
        source: TickSource,
        mailbox: Mailbox,
        emit: EmitFn,
        stop_event: asyncio.Event | None,
    ) -> int:
        sent = 0
        ticks = _iter_ticks(source)
        try:
            while True:
                tick = await _next_tick(ticks, stop_event)
                if tick is None:
                    break
                if not await PriceActor(tick, mailbox, emit).send():
                    break
                sent += 1
        finally:
            await ticks.aclose()
            await mailbox.close()
        return sent


async def _pull(ticks: AsyncIterator[PriceTick]) -> PriceTick | None:
    try:
        return await ticks.__anext__()
    except StopAsyncIteration:
        return None


async def _next_tick(
    ticks: AsyncIterator[PriceTick],
    stop_event: asyncio.Event | None,
) -> PriceTick | None:
    """Next tick, or None once the source is exhausted or `stop_event` is set.

    A stop that arrives while the source is idle cancels the pending fetch.
    """
    if stop_event is None:
        return await _pull(ticks)
    if stop_event.is_set():
        return None

    fetch = asyncio.create_task(_pull(ticks), name="ohlc-next-tick")
    stop = asyncio.create_task(stop_event.wait(), name="ohlc-stop-wait")
    try:
        done, _ = await asyncio.wait({fetch, stop}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop.cancel()
        if not fetch.done():
            fetch.cancel()
            await asyncio.wait({fetch})
    if fetch in done:
        return fetch.result()
    return None


async def _iter_ticks(source: TickSource):
    """Yield `PriceTick`s from a sync or async source, parsing raw lines and skipping bad ones."""
    if hasattr(source, "__aiter__"):
        it = source.__aiter__()  # type: ignore[union-attr]
        try:
            async for raw in it:
                tick = _coerce_tick(raw)
                if tick is not None:
                    yield tick
        finally:
            aclose = getattr(it, "aclose", None)
            if aclose is not None:
                await aclose()
        return
    for raw in source:  # type: ignore[union-attr]
        tick = _coerce_tick(raw)
        if tick is not None:
            yield tick
        # cooperative yield for sync sources
        await asyncio.sleep(0)


def _coerce_tick(raw: Any) -> PriceTick | None:
    if isinstance(raw, PriceTick):
        return raw
    if isinstance(raw, (str, bytes)):
        return parse_price_line(raw)
    return None
