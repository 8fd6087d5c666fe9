"""
Edgewatch error taxonomy.

Connection-level failures (``ConnectError`` and its subclasses) are handled
only by the reconnect supervisor.  ``FrameParseError`` never leaves the
protocol client's reader.  ``ResearchError`` never leaves a research task;
it becomes a ``research_failed`` rejection record.
"""

from __future__ import annotations

from typing import Optional


class EdgewatchError(Exception):
    """Base class for all edgewatch errors."""


class ConfigurationError(EdgewatchError):
    """Raised when configuration is invalid."""


class ConnectError(EdgewatchError):
    """Socket or handshake failure on the streaming connection."""


class StaleConnection(ConnectError):
    """Connection judged dead by a timeout heuristic.

    ``reason`` is one of ``subscribe_ack_timeout``, ``ping_ack_timeout``
    or ``idle_timeout``.
    """

    def __init__(self, reason: str, age_s: Optional[float] = None) -> None:
        self.reason = reason
        self.age_s = age_s
        detail = f" after {age_s:.1f}s" if age_s is not None else ""
        super().__init__(f"stale connection: {reason}{detail}")


class SubscribeRejected(ConnectError):
    """Server acknowledged a subscribe with ``success: false``."""

    def __init__(self, txid: int, topics=None) -> None:
        self.txid = txid
        self.topics = list(topics or [])
        super().__init__(f"subscribe txid={txid} rejected for {self.topics}")


class FrameParseError(EdgewatchError):
    """A single inbound frame could not be decoded."""


class ResearchError(EdgewatchError):
    """Research call failed or returned unparseable content."""


class ManifoldAPIError(EdgewatchError):
    """Non-retryable (or retry-exhausted) REST API failure."""

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        super().__init__(f"Manifold HTTP {status}: {message}")
