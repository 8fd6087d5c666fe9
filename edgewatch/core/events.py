"""
Edgewatch Event Types
=====================

Dataclass-based records that flow through the pipeline.
All records are immutable after creation.

    MarketEvent      -- parsed ``global/new-contract`` broadcast
    ResearchResult   -- parsed research collaborator answer
    TradeSignal      -- terminal: researched market with its edge
    RejectionRecord  -- terminal: filtered out or research failed
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


class ConnectionState(str, Enum):
    """Reconnect supervisor states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    BACKOFF = "backoff"


# ─── Rejection reason codes ─────────────────────────────────
REASON_NOT_BINARY = "not_binary"
REASON_RESOLVED = "resolved"
REASON_NOT_CPMM = "not_cpmm"
REASON_NOT_PUBLIC = "not_public"
REASON_LOW_LIQUIDITY = "low_liquidity"
REASON_RESEARCH_FAILED = "research_failed"

# ─── Wire constants ─────────────────────────────────────────
OUTCOME_BINARY = "BINARY"
MECHANISM_CPMM = "cpmm-1"
VISIBILITY_PUBLIC = "public"


@dataclass(frozen=True, slots=True)
class MarketEvent:
    """Newly created market from the ``global/new-contract`` topic.

    Timestamps are Unix milliseconds as sent by the server.
    """
    id: str
    question: str
    outcome_type: str
    mechanism: str
    visibility: str
    is_resolved: bool
    created_time: int
    close_time: Optional[int] = None
    probability: Optional[float] = None
    slug: str = ""
    creator_username: str = ""
    total_liquidity: Optional[float] = None
    text_description: str = ""
    receive_time: float = field(default_factory=time.time)

    @classmethod
    def from_contract(cls, contract: Dict[str, Any], creator: Optional[Dict[str, Any]] = None) -> "MarketEvent":
        """Build from a camelCase contract payload.

        Raises ``KeyError`` / ``TypeError`` / ``ValueError`` on a payload
        missing required fields; callers translate these into
        ``FrameParseError``.
        """
        probability = contract.get("probability")
        liquidity = contract.get("totalLiquidity")
        close_time = contract.get("closeTime")
        return cls(
            id=str(contract["id"]),
            question=str(contract["question"]),
            outcome_type=str(contract["outcomeType"]),
            mechanism=str(contract["mechanism"]),
            visibility=str(contract["visibility"]),
            is_resolved=bool(contract["isResolved"]),
            created_time=int(contract["createdTime"]),
            close_time=int(close_time) if close_time is not None else None,
            probability=float(probability) if probability is not None else None,
            slug=str(contract.get("slug") or ""),
            creator_username=str((creator or {}).get("username") or contract.get("creatorUsername") or ""),
            total_liquidity=float(liquidity) if liquidity is not None else None,
            text_description=str(contract.get("textDescription") or ""),
        )


@dataclass(frozen=True, slots=True)
class ResearchResult:
    """Independent probability estimate for one market."""
    market_id: str
    estimated_probability: float   # fraction in [0.0, 1.0]
    reasoning: str


@dataclass(frozen=True, slots=True)
class TradeSignal:
    """Researched market with the absolute edge versus the market price.

    Emitted for every successfully researched market; whether the edge is
    significant is the consumer's decision.
    """
    market_id: str
    question: str
    market_probability: float
    estimated_probability: float
    edge: float
    timestamp: float = field(default_factory=time.time)
    reasoning: str = ""

    @property
    def direction(self) -> str:
        if self.estimated_probability > self.market_probability:
            return "YES"
        if self.estimated_probability < self.market_probability:
            return "NO"
        return "NONE"


@dataclass(frozen=True, slots=True)
class RejectionRecord:
    """Market that was filtered out or whose research failed."""
    market_id: str
    reason_code: str
    detail: str = ""
    timestamp: float = field(default_factory=time.time)


Decision = Union[TradeSignal, RejectionRecord]
