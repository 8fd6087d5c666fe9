"""
Status payloads for the streaming core.

The stream client and the reconnect supervisor each report a
:class:`ComponentStatus`; the orchestrator logs them at shutdown.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utc_iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass(slots=True)
class ComponentStatus:
    """Connection-oriented status: state, counters and frame staleness."""

    name: str
    state: str
    last_error: Optional[str] = None
    counters: Dict[str, int] = field(default_factory=dict)
    last_frame_at: Optional[float] = None   # wall clock, seconds
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self, now: Optional[float] = None) -> Dict[str, Any]:
        age = None
        if self.last_frame_at is not None:
            age = round((now if now is not None else time.time()) - self.last_frame_at, 1)
        return {
            "name": self.name,
            "state": self.state,
            "last_error": self.last_error,
            "counters": dict(self.counters),
            "last_frame": {"ts": utc_iso(self.last_frame_at), "age_seconds": age},
            "details": self.details,
        }
