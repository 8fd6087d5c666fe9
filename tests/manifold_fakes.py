"""
In-process fakes for the streaming core: websocket, connector, clock and
Manifold payload builders.  Nothing here touches the network.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

from websockets.exceptions import ConnectionClosedError


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWebSocket:
    """Websocket double: records sent frames, replays queued inbound ones."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def send(self, text: str) -> None:
        if self.closed:
            raise ConnectionClosedError(None, None)
        self.sent.append(json.loads(text))

    async def recv(self) -> Any:
        item = await self.inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    def feed(self, frame: Any) -> None:
        """Queue an inbound frame; dicts are JSON-encoded, str/bytes sent raw."""
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self.inbox.put_nowait(frame)

    def drop(self) -> None:
        """Make the next recv fail as if the peer went away."""
        self.inbox.put_nowait(ConnectionClosedError(None, None))


class FakeConnector:
    """Stand-in for ``websockets.connect`` handing out FakeWebSockets."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls: List[tuple] = []
        self.sockets: List[FakeWebSocket] = []

    async def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls.append((url, kwargs))
        if self.failures > 0:
            self.failures -= 1
            raise OSError("connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll *predicate* until true, failing the test after *timeout*."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(0.005)


def make_contract(**overrides: Any) -> Dict[str, Any]:
    contract = {
        "id": "mkt-1",
        "slug": "will-it-rain-tomorrow",
        "question": "Will it rain tomorrow?",
        "outcomeType": "BINARY",
        "mechanism": "cpmm-1",
        "visibility": "public",
        "isResolved": False,
        "probability": 0.5,
        "createdTime": 1_700_000_000_000,
        "closeTime": 1_700_086_400_000,
        "totalLiquidity": 250.0,
        "textDescription": "Resolves YES if any rain is recorded.",
    }
    contract.update(overrides)
    return contract


def new_contract_frame(creator: Optional[Dict[str, Any]] = None, **overrides: Any) -> Dict[str, Any]:
    return {
        "type": "broadcast",
        "topic": "global/new-contract",
        "data": {
            "contract": make_contract(**overrides),
            "creator": creator or {"id": "u1", "username": "alice", "name": "Alice"},
        },
    }


def ack_frame(txid: int, success: bool = True) -> Dict[str, Any]:
    return {"type": "ack", "txid": txid, "success": success}
