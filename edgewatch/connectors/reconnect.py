"""
Reconnect Supervisor
====================

Owns the streaming connection's whole lifecycle and its state machine::

    DISCONNECTED -> CONNECTING -> SUBSCRIBING -> ACTIVE
                        ^                          |
                        +------ BACKOFF <----------+  (stale / closed / error)

The delay spent in BACKOFF is fixed (3s by default).  Dropped streaming
connections are expected to be frequent and short, so there is no
exponential growth here; the REST client keeps its own backoff policy.

Every reconnect re-sends the subscribe frame; nothing about the previous
connection's subscriptions is assumed to survive.

Markets are published to every output channel.  Only this task touches
``state``; the client's ack callback runs inside this task too.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..core.bridge import Channel, ChannelClosed
from ..core.config import StreamConfig
from ..core.errors import ConnectError
from ..core.events import ConnectionState, MarketEvent
from ..core.logger import get_connector_logger
from ..core.status import ComponentStatus
from .manifold_ws import ManifoldStreamClient

logger = get_connector_logger('reconnect')

StateCallback = Callable[[ConnectionState, ConnectionState], None]


class ReconnectSupervisor:
    """Restart loop around a :class:`ManifoldStreamClient`.

    Args:
        outputs: Channels that receive every parsed :class:`MarketEvent`.
        config: Stream settings (endpoint, reconnect delay, timeouts).
        client: Optional pre-built client; one is created from ``config``
            otherwise.
        on_state_change: Called with ``(old, new)`` on every transition.
        sleep: Injectable for tests.
    """

    def __init__(
        self,
        outputs: Sequence[Channel],
        config: Optional[StreamConfig] = None,
        *,
        client: Optional[ManifoldStreamClient] = None,
        on_state_change: Optional[StateCallback] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._cfg = config or StreamConfig()
        self._outputs: List[Channel] = list(outputs)
        self._client = client or ManifoldStreamClient(self._cfg)
        self._client.on_subscribed = self._on_subscribed
        self._on_state_change = on_state_change
        self._sleep = sleep

        self.state = ConnectionState.DISCONNECTED
        self.history: "deque[tuple]" = deque(maxlen=100)
        self.connect_attempts = 0
        self.reconnects = 0
        self.markets_published = 0
        self.last_error: Optional[str] = None

    @property
    def client(self) -> ManifoldStreamClient:
        return self._client

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, new: ConnectionState) -> None:
        old = self.state
        if old == new:
            return
        self.state = new
        self.history.append((new, time.time()))
        logger.debug("Connection state %s -> %s", old.value, new.value)
        if self._on_state_change:
            self._on_state_change(old, new)

    def _on_subscribed(self, txid: int) -> None:
        self._transition(ConnectionState.ACTIVE)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Connect and stream forever.  Ends only when cancelled."""
        delay = self._cfg.reconnect_delay_s
        try:
            while True:
                self._transition(ConnectionState.CONNECTING)
                self.connect_attempts += 1
                try:
                    await self._client.connect(self._cfg.endpoint)
                    self._transition(ConnectionState.SUBSCRIBING)
                    await self._pump()
                except ConnectError as e:
                    self.last_error = str(e)
                    logger.warning("Manifold stream lost: %s", e)
                except Exception as e:
                    self.last_error = str(e)
                    logger.exception("Unexpected error in Manifold stream: %s", e)
                finally:
                    await self._client.close()

                self.reconnects += 1
                self._transition(ConnectionState.BACKOFF)
                logger.info("Reconnecting in %.1fs (attempt %d)", delay, self.reconnects)
                await self._sleep(delay)
        finally:
            await self._client.close()
            self._transition(ConnectionState.DISCONNECTED)
            for ch in self._outputs:
                ch.close()
            logger.info("Reconnect supervisor stopped")

    async def _pump(self) -> None:
        stream = self._client.events()
        try:
            async for market in stream:
                self._publish(market)
        finally:
            await stream.aclose()
        raise ConnectError("event stream ended")

    def _publish(self, market: MarketEvent) -> None:
        self.markets_published += 1
        for ch in self._outputs:
            try:
                ch.send(market)
            except ChannelClosed:
                logger.debug("Output %s closed, market %s not delivered there", ch.name, market.id)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        return ComponentStatus(
            name="reconnect_supervisor",
            state=self.state.value,
            last_error=self.last_error,
            counters={
                "connect_attempts": self.connect_attempts,
                "reconnects": self.reconnects,
                "markets_published": self.markets_published,
            },
            last_frame_at=self._client.last_message_ts,
            details={
                "history": [(s.value, round(ts, 3)) for s, ts in list(self.history)[-10:]],
                "client": self._client.get_health_status(),
            },
        ).to_dict()
