from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict

from ingestion.contracts.price_tick import PriceTick
from ohlc_engine.exceptions.core import ChannelClosedError
from ohlc_engine.ohlc import OHLCState, RollingOHLC
from ohlc_engine.utils.logger import get_logger, log_info, log_warn

EmitFn = Callable[[RollingOHLC], Any]


@dataclass
class Message:
    """A tick submitted to the `OHLCActor` plus the one-shot slot its reply goes into."""

    data: PriceTick
    respond_to: asyncio.Future[RollingOHLC]


class Mailbox:
    """Request channel between submitters and the `OHLCActor`.

    Two ways to close it:
        - sender side   : `close()` enqueues an end-of-input marker; the actor
                          finishes the queued messages and stops.
        - receiver side : `close_receiver()` is called by the actor on exit;
                          further `send()` calls fail and queued replies are
                          failed with `ChannelClosedError`.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue[Message | None] = asyncio.Queue(maxsize=maxsize)
        self._sender_closed = False
        self._receiver_closed = False

    @property
    def closed(self) -> bool:
        return self._sender_closed or self._receiver_closed

    async def send(self, message: Message) -> None:
        if self.closed:
            raise ChannelClosedError("OHLC actor is not accepting messages")
        await self._queue.put(message)

    async def close(self) -> None:
        if self._sender_closed:
            return
        self._sender_closed = True
        if not self._receiver_closed:
            await self._queue.put(None)

    async def recv(self) -> Message | None:
        if self._receiver_closed:
            return None
        return await self._queue.get()

    def close_receiver(self) -> None:
        self._receiver_closed = True
        while not self._queue.empty():
            msg = self._queue.get_nowait()
            if msg is not None and not msg.respond_to.done():
                msg.respond_to.set_exception(ChannelClosedError("OHLC actor stopped"))


class PriceActor:
    """Submits one tick to the `OHLCActor`, waits for the refreshed OHLC and emits it.

    Failure policy:
        - submission rejected (actor gone)  -> logged, returns False
        - reply never delivered             -> logged, returns False
        - emit raising                      -> logged, returns True
    """

    def __init__(self, data: PriceTick, sender: Mailbox, emit: EmitFn):
        self.data = data
        self.sender = sender
        self.emit = emit
        self._logger = get_logger(f"ohlc_engine.{self.__class__.__name__}")

    async def send(self) -> bool:
        loop = asyncio.get_running_loop()
        respond_to: asyncio.Future[RollingOHLC] = loop.create_future()
        try:
            await self.sender.send(Message(data=self.data, respond_to=respond_to))
        except ChannelClosedError as exc:
            log_warn(self._logger, "ohlc.submit_rejected", symbol=self.data.ticker, err=str(exc))
            return False

        try:
            rolling_ohlc = await respond_to
        except ChannelClosedError as exc:
            log_warn(self._logger, "ohlc.receive_error", symbol=self.data.ticker, err=str(exc))
            return False

        try:
            out = self.emit(rolling_ohlc)
            if inspect.isawaitable(out):
                await out
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_warn(
                self._logger,
                "ohlc.emit_error",
                symbol=self.data.ticker,
                err_type=type(exc).__name__,
                err=str(exc),
            )
        return True


class OHLCActor:
    """Single owner of the ticker -> `OHLCState` map.

    Processes messages strictly in arrival order, one at a time, and replies
    to each with the ticker's refreshed `RollingOHLC`. Runs until the mailbox
    is closed by the sender side.
    """

    def __init__(self, receiver: Mailbox, timeframe_millis: int, *, prune_history: bool = False):
        self.receiver = receiver
        self.timeframe_millis = int(timeframe_millis)
        self.prune_history = prune_history
        self.price_data: Dict[str, OHLCState] = {}
        self.processed = 0
        self._inflight: Message | None = None
        self._logger = get_logger(f"ohlc_engine.{self.__class__.__name__}")

    def handle_message(self, message: Message) -> None:
        ticker = message.data.ticker
        state = self.price_data.get(ticker)
        if state is None:
            state = OHLCState(self.timeframe_millis, prune_history=self.prune_history)
            self.price_data[ticker] = state

        rolling_ohlc = state.add_price_timestamp(
            ticker,
            message.data.ask_price,
            message.data.timestamp_start,
        )
        self.processed += 1

        if message.respond_to.done():
            # submitter stopped waiting; nothing to deliver
            log_warn(self._logger, "ohlc.reply_dropped", symbol=ticker)
            return
        message.respond_to.set_result(rolling_ohlc)

    async def run(self) -> None:
        log_info(self._logger, "ohlc.actor_start", window_ms=self.timeframe_millis)
        stop_reason = "exit"
        try:
            while True:
                msg = await self.receiver.recv()
                if msg is None:
                    break
                self._inflight = msg
                self.handle_message(msg)
                self._inflight = None
        except asyncio.CancelledError:
            stop_reason = "cancelled"
            raise
        except Exception:
            stop_reason = "error"
            raise
        finally:
            if self._inflight is not None and not self._inflight.respond_to.done():
                self._inflight.respond_to.set_exception(ChannelClosedError("OHLC actor failed"))
            self._inflight = None
            self.receiver.close_receiver()
            log_info(
                self._logger,
                "ohlc.actor_stop",
                reason=stop_reason,
                processed=self.processed,
                n_tickers=len(self.price_data),
            )
