"""
Edgewatch Event Bridge
======================

Fan-in of independently paced async producers into one consumer-facing
stream.

Design constraints
------------------
* ``Channel.send()`` is O(1) and never suspends; channels are unbounded.
  A slow consumer grows the output queue rather than stalling producers,
  so callers that expect sustained slow consumption should bound it
  externally.
* Order is preserved within each input.  Nothing is promised across
  inputs: a decision for market A may be forwarded after market B arrives.
* The bridge ends when every input is closed and drained, or when its
  task is cancelled.  Either way the output channel is closed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger("edgewatch.bridge")

# Sentinel pushed by Channel.close()
_CLOSED = object()


class ChannelClosed(Exception):
    """Raised by ``send`` after close, and by ``recv`` once drained."""


class Channel:
    """Unbounded single-consumer async channel with explicit close.

    Usage::

        ch = Channel("markets")
        ch.send(event)
        ch.close()
        async for item in ch:
            ...
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._drained = False
        self.sent = 0
        self.peak_depth = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, item: Any) -> None:
        if self._closed:
            raise ChannelClosed(self.name)
        self._queue.put_nowait(item)
        self.sent += 1
        depth = self._queue.qsize()
        if depth > self.peak_depth:
            self.peak_depth = depth

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def recv(self) -> Any:
        if self._drained:
            raise ChannelClosed(self.name)
        item = await self._queue.get()
        if item is _CLOSED:
            self._drained = True
            raise ChannelClosed(self.name)
        return item

    def qsize(self) -> int:
        """Items waiting, excluding the close marker."""
        depth = self._queue.qsize()
        if self._closed and not self._drained:
            depth -= 1
        return max(depth, 0)

    def __aiter__(self) -> "Channel":
        return self

    async def __anext__(self) -> Any:
        try:
            return await self.recv()
        except ChannelClosed:
            raise StopAsyncIteration


class EventBridge:
    """Select-style multiplexer from several input channels into ``output``.

    Each input has at most one outstanding ``recv`` at a time, and it is
    re-armed only after its previous item has been forwarded, which is what
    keeps per-input order intact.
    """

    def __init__(self, *inputs: Channel, output: Optional[Channel] = None) -> None:
        if not inputs:
            raise ValueError("EventBridge needs at least one input channel")
        self._inputs: List[Channel] = list(inputs)
        self.output = output or Channel("bridge.output")
        self._forwarded: Dict[str, int] = {ch.name: 0 for ch in inputs}
        self._closed_inputs: List[str] = []
        self._running = False

    async def run(self) -> None:
        """Forward items until all inputs are drained or the task is cancelled."""
        self._running = True
        order = {id(ch): i for i, ch in enumerate(self._inputs)}
        pending: Dict[asyncio.Task, Channel] = {}

        def _arm(ch: Channel) -> None:
            pending[asyncio.ensure_future(ch.recv())] = ch

        for ch in self._inputs:
            _arm(ch)

        logger.debug("bridge started with %d input(s)", len(self._inputs))
        try:
            while pending:
                done, _ = await asyncio.wait(set(pending), return_when=asyncio.FIRST_COMPLETED)
                for task in sorted(done, key=lambda t: order[id(pending[t])]):
                    ch = pending.pop(task)
                    try:
                        item = task.result()
                    except ChannelClosed:
                        self._closed_inputs.append(ch.name)
                        logger.debug("bridge input %s closed", ch.name)
                        continue
                    try:
                        self.output.send(item)
                    except ChannelClosed:
                        logger.info("bridge output closed by consumer, stopping")
                        return
                    self._forwarded[ch.name] += 1
                    _arm(ch)
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            self._running = False
            self._inputs = []
            self.output.close()
            logger.debug("bridge stopped, output closed")

    def get_status(self) -> Dict[str, Any]:
        """Per-input forward counters and output depth."""
        return {
            "running": self._running,
            "forwarded": dict(self._forwarded),
            "closed_inputs": list(self._closed_inputs),
            "output_depth": self.output.qsize(),
            "output_peak_depth": self.output.peak_depth,
        }
