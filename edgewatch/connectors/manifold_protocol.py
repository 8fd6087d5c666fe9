"""
Manifold Streaming Frame Parser
===============================

Isolated, pure-function helpers for the Manifold websocket JSON frames.
No network or reconnect logic lives here, only building outbound frames
and decoding inbound ones.

Client -> server::

    {"type": "subscribe",   "txid": N, "topics": [...]}
    {"type": "unsubscribe", "txid": N, "topics": [...]}
    {"type": "ping",        "txid": N}

Server -> client::

    {"type": "ack",       "txid": N, "success": bool}
    {"type": "broadcast", "topic": "...", "data": {...}}

``global/new-contract`` broadcasts carry ``{"contract": {...}, "creator": {...}}``
with camelCase keys and Unix-millisecond timestamps.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from ..core.errors import FrameParseError
from ..core.events import OUTCOME_BINARY, MarketEvent


class FrameType(str, Enum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    PING = "ping"
    ACK = "ack"
    BROADCAST = "broadcast"


# ---------------------------------------------------------------------------
# Outbound frames
# ---------------------------------------------------------------------------

def build_subscribe(txid: int, topics: Iterable[str]) -> Dict[str, Any]:
    return {"type": FrameType.SUBSCRIBE.value, "txid": txid, "topics": list(topics)}


def build_unsubscribe(txid: int, topics: Iterable[str]) -> Dict[str, Any]:
    return {"type": FrameType.UNSUBSCRIBE.value, "txid": txid, "topics": list(topics)}


def build_ping(txid: int) -> Dict[str, Any]:
    return {"type": FrameType.PING.value, "txid": txid}


# ---------------------------------------------------------------------------
# Inbound frames
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InboundFrame:
    """Minimal envelope for any inbound frame."""
    msg_type: str
    raw: Dict[str, Any]


def parse_frame(text: Any) -> InboundFrame:
    """Decode a raw websocket message into an :class:`InboundFrame`.

    Raises ``FrameParseError`` for non-JSON text or a JSON value that is
    not an object with a string ``type``.
    """
    if isinstance(text, (bytes, bytearray)):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FrameParseError(f"undecodable binary frame: {exc}") from exc
    try:
        raw = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise FrameParseError(f"invalid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise FrameParseError(f"frame is not an object: {type(raw).__name__}")
    msg_type = raw.get("type")
    if not isinstance(msg_type, str):
        raise FrameParseError("frame has no string 'type'")
    return InboundFrame(msg_type=msg_type, raw=raw)


def is_ack(frame: InboundFrame) -> bool:
    return frame.msg_type == FrameType.ACK


def is_broadcast(frame: InboundFrame, topic: Optional[str] = None) -> bool:
    if frame.msg_type != FrameType.BROADCAST:
        return False
    return topic is None or frame.raw.get("topic") == topic


def ack_fields(frame: InboundFrame) -> tuple:
    """Return ``(txid, success)`` for an ack frame."""
    txid = frame.raw.get("txid")
    if isinstance(txid, bool) or not isinstance(txid, int):
        raise FrameParseError(f"ack without integer txid: {txid!r}")
    return txid, bool(frame.raw.get("success", False))


def parse_new_contract(frame: InboundFrame) -> MarketEvent:
    """Extract a :class:`MarketEvent` from a ``global/new-contract`` broadcast."""
    data = frame.raw.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("contract"), dict):
        raise FrameParseError("new-contract broadcast without contract object")
    creator = data.get("creator") if isinstance(data.get("creator"), dict) else None
    try:
        market = MarketEvent.from_contract(data["contract"], creator)
    except (KeyError, TypeError, ValueError) as exc:
        raise FrameParseError(f"bad contract payload: {exc!r}") from exc
    # BINARY markets always carry a price; one without is unusable downstream
    if market.outcome_type == OUTCOME_BINARY and market.probability is None:
        raise FrameParseError(f"BINARY contract {market.id} without probability")
    return market


def encode(frame: Dict[str, Any]) -> str:
    return json.dumps(frame, separators=(",", ":"))
