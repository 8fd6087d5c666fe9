"""
Manifold WebSocket Connector
============================

Streaming client for the public Manifold websocket.  Owns one connection
at a time: sends the subscribe handshake, tracks pending acknowledgements,
sends application-level keepalive pings and turns ``global/new-contract``
broadcasts into :class:`MarketEvent` records.

All connection state (pending acks, keepalive timer, last-frame time) is
read and written only from the task iterating :meth:`events`.  Keepalive
and staleness checks run on every wakeup of that loop, which happens at
least every ``check_interval_s`` even with no traffic.

Staleness (any one closes the connection and raises ``StaleConnection``):

* subscribe sent, no ack within ``subscribe_ack_timeout_s`` (120s)
* ping sent, no ack within ``ping_ack_timeout_s`` (60s)
* no frame of any kind for ``idle_timeout_s`` (300s)
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..core.config import StreamConfig, TOPIC_NEW_CONTRACT
from ..core.errors import ConnectError, FrameParseError, StaleConnection, SubscribeRejected
from ..core.events import MarketEvent
from ..core.logger import get_connector_logger
from ..core.status import ComponentStatus
from . import manifold_protocol as proto

logger = get_connector_logger('manifold_ws')

_OPEN_TIMEOUT_S = 10.0
_CLOSE_TIMEOUT_S = 5.0


@dataclass(slots=True)
class PendingAck:
    """Outbound request awaiting its ``ack`` frame."""
    txid: int
    kind: str                 # 'subscribe', 'unsubscribe' or 'ping'
    sent_at: float            # client clock (monotonic) at send time
    topics: Tuple[str, ...] = field(default_factory=tuple)


class ManifoldStreamClient:
    """
    Manifold public websocket client.

    Usage::

        client = ManifoldStreamClient(StreamConfig())
        await client.connect()            # also sends the subscribe frame
        async for market in client.events():
            ...
        await client.close()

    ``events()`` raises ``ConnectError`` (or a subclass) when the connection
    is lost, judged stale, or the subscription is rejected.  A single bad
    frame never ends the stream.
    """

    def __init__(
        self,
        config: Optional[StreamConfig] = None,
        *,
        on_subscribed: Optional[Callable[[int], None]] = None,
        connector: Optional[Callable[..., Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cfg = config or StreamConfig()
        self.on_subscribed = on_subscribed
        self._connector = connector or websockets.connect
        self._clock = clock

        # Connection state (reset on every connect)
        self._ws = None
        self._txids = itertools.count(1)
        self._pending: Dict[int, PendingAck] = {}
        self._active = False
        self._last_frame_at: float = 0.0
        self._last_ping_at: float = 0.0

        # Health / observability
        self.last_message_ts: Optional[float] = None
        self.last_error: Optional[str] = None
        self.frames_received: int = 0
        self.frames_dropped: int = 0
        self.broadcasts_ignored: int = 0
        self.markets_emitted: int = 0
        self.pings_sent: int = 0
        self.drops_by_reason: Dict[str, int] = {}
        self._drop_log_ts: Dict[str, float] = {}
        self._drop_log_interval_s = 60

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, endpoint: Optional[str] = None) -> int:
        """Open the socket and send the subscribe frame.

        Returns the subscribe txid.  Raises ``ConnectError`` on any socket
        or handshake failure.
        """
        url = endpoint or self._cfg.endpoint
        await self.close()
        self._txids = itertools.count(1)
        self._pending = {}
        self._active = False

        logger.info("Connecting to Manifold WebSocket: %s", url)
        try:
            self._ws = await self._connector(
                url,
                ping_interval=None,
                open_timeout=_OPEN_TIMEOUT_S,
                close_timeout=_CLOSE_TIMEOUT_S,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self.last_error = f"connect_failed:{e}"
            raise ConnectError(f"connect to {url} failed: {e}") from e

        self._last_frame_at = self._clock()
        logger.info("Manifold WebSocket connected")
        return await self.subscribe(self._cfg.topics)

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        self._active = False
        if ws is None:
            return
        try:
            await ws.close()
        except (OSError, WebSocketException) as e:
            logger.debug("Error while closing websocket: %s", e)

    @property
    def is_active(self) -> bool:
        """True once the current connection's subscribe has been acked."""
        return self._active and self._ws is not None

    @property
    def pending_acks(self) -> List[PendingAck]:
        return list(self._pending.values())

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def subscribe(self, topics) -> int:
        """Send a subscribe frame and record it as pending.  Returns the txid."""
        topics = tuple(topics)
        txid = next(self._txids)
        await self._send(proto.build_subscribe(txid, topics))
        self._pending[txid] = PendingAck(txid, 'subscribe', self._clock(), topics)
        logger.debug("Subscribe sent txid=%d topics=%s", txid, list(topics))
        return txid

    async def unsubscribe(self, topics) -> int:
        topics = tuple(topics)
        txid = next(self._txids)
        await self._send(proto.build_unsubscribe(txid, topics))
        self._pending[txid] = PendingAck(txid, 'unsubscribe', self._clock(), topics)
        logger.debug("Unsubscribe sent txid=%d topics=%s", txid, list(topics))
        return txid

    async def _ping(self) -> None:
        txid = next(self._txids)
        await self._send(proto.build_ping(txid))
        now = self._clock()
        self._pending[txid] = PendingAck(txid, 'ping', now)
        self._last_ping_at = now
        self.pings_sent += 1

    async def _send(self, frame: Dict[str, Any]) -> None:
        if self._ws is None:
            raise ConnectError("not connected")
        try:
            await self._ws.send(proto.encode(frame))
        except (OSError, WebSocketException) as e:
            self.last_error = f"send_failed:{e}"
            raise ConnectError(f"send failed: {e}") from e

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def events(self) -> AsyncIterator[MarketEvent]:
        """Yield new markets for the lifetime of the current connection."""
        if self._ws is None:
            raise ConnectError("not connected")

        while True:
            stale = self._check_staleness()
            if stale is not None:
                self.last_error = str(stale)
                logger.warning("Manifold WebSocket %s", stale)
                await self.close()
                raise stale

            if self._active and self._clock() - self._last_ping_at >= self._cfg.ping_interval_s:
                await self._ping()

            try:
                message = await asyncio.wait_for(self._ws.recv(), timeout=self._cfg.check_interval_s)
            except asyncio.TimeoutError:
                continue
            except ConnectionClosed as e:
                self.last_error = f"closed:{e}"
                await self.close()
                raise ConnectError(f"connection closed: {e}") from e
            except OSError as e:
                self.last_error = f"recv_failed:{e}"
                await self.close()
                raise ConnectError(f"recv failed: {e}") from e

            self._last_frame_at = self._clock()
            self.last_message_ts = time.time()
            self.frames_received += 1

            market = self._handle_message(message)
            if market is not None:
                self.markets_emitted += 1
                yield market

    def _handle_message(self, message: Any) -> Optional[MarketEvent]:
        """Dispatch one frame.  Returns a market for new-contract broadcasts.

        Only ``SubscribeRejected`` escapes; every other problem is counted
        and dropped.
        """
        try:
            frame = proto.parse_frame(message)
            if proto.is_ack(frame):
                self._handle_ack(frame)
                return None
            if proto.is_broadcast(frame, TOPIC_NEW_CONTRACT):
                return proto.parse_new_contract(frame)
            if proto.is_broadcast(frame):
                self.broadcasts_ignored += 1
                logger.debug("Ignoring broadcast on topic %s", frame.raw.get("topic"))
                return None
            self._record_drop("unknown_type", f"type={frame.msg_type!r}")
        except FrameParseError as e:
            self._record_drop("parse_error", str(e), sample=message)
        return None

    def _handle_ack(self, frame: proto.InboundFrame) -> None:
        txid, success = proto.ack_fields(frame)
        pending = self._pending.pop(txid, None)
        if pending is None:
            logger.debug("Ack for unknown txid=%d (success=%s)", txid, success)
            return
        if pending.kind == 'subscribe':
            if not success:
                self.last_error = f"subscribe_rejected:{txid}"
                raise SubscribeRejected(txid, pending.topics)
            if not self._active:
                self._active = True
                self._last_ping_at = self._clock()
                logger.info("Subscription confirmed txid=%d topics=%s", txid, list(pending.topics))
                if self.on_subscribed:
                    self.on_subscribed(txid)
        elif not success:
            logger.warning("%s txid=%d acked with success=false", pending.kind, txid)

    def _check_staleness(self) -> Optional[StaleConnection]:
        now = self._clock()
        for pending in self._pending.values():
            age = now - pending.sent_at
            if pending.kind == 'ping':
                if age >= self._cfg.ping_ack_timeout_s:
                    return StaleConnection('ping_ack_timeout', age)
            elif age >= self._cfg.subscribe_ack_timeout_s:
                return StaleConnection('subscribe_ack_timeout', age)
        idle = now - self._last_frame_at
        if idle >= self._cfg.idle_timeout_s:
            return StaleConnection('idle_timeout', idle)
        return None

    def _record_drop(self, reason: str, detail: str, sample: Any = None) -> None:
        self.frames_dropped += 1
        self.drops_by_reason[reason] = self.drops_by_reason.get(reason, 0) + 1
        now = time.time()
        if now - self._drop_log_ts.get(reason, 0.0) >= self._drop_log_interval_s:
            self._drop_log_ts[reason] = now
            preview = repr(sample)[:100] if sample is not None else ""
            logger.warning("Dropped frame (%s): %s %s", reason, detail, preview)
        else:
            logger.debug("Dropped frame (%s): %s", reason, detail)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def get_health_status(self) -> Dict[str, Any]:
        """Return detailed health info for status logging."""
        if self._ws is None:
            state = "down" if self.last_error else "unknown"
        elif not self._active:
            state = "subscribing"
        else:
            state = "active"
        return ComponentStatus(
            name="manifold_ws",
            state=state,
            last_error=self.last_error,
            counters={
                "frames_received": self.frames_received,
                "frames_dropped": self.frames_dropped,
                "broadcasts_ignored": self.broadcasts_ignored,
                "markets_emitted": self.markets_emitted,
                "pings_sent": self.pings_sent,
            },
            last_frame_at=self.last_message_ts,
            details={
                "pending_acks": [
                    {"txid": p.txid, "kind": p.kind, "age_s": round(self._clock() - p.sent_at, 1)}
                    for p in self._pending.values()
                ],
                "drops_by_reason": dict(self.drops_by_reason),
            },
        ).to_dict()
