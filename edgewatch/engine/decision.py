"""
Decision Engine
===============

Per market::

    Received -> Filtered{accepted|rejected} -> Researching -> Decided -> Emitted

* Filtering is synchronous; a rejected market produces a
  :class:`RejectionRecord` carrying the first failing predicate and costs no
  research call.
* Each accepted market gets its own research task, so intake never waits on
  research.  Concurrency is unbounded unless ``max_concurrent_research`` is
  set.
* Every accepted market ends in exactly one record: a :class:`TradeSignal`
  (always, whatever the edge) or a ``research_failed`` rejection.  A task
  cancelled at shutdown emits nothing.
"""

from __future__ import annotations

import asyncio
import contextlib
import re
from typing import Any, Dict, Optional, Set

from ..connectors.xai_research import ResearchCollaborator
from ..core.bridge import Channel, ChannelClosed
from ..core.config import EngineConfig
from ..core.errors import ResearchError
from ..core.events import (
    MECHANISM_CPMM,
    OUTCOME_BINARY,
    REASON_LOW_LIQUIDITY,
    REASON_NOT_BINARY,
    REASON_NOT_CPMM,
    REASON_NOT_PUBLIC,
    REASON_RESEARCH_FAILED,
    REASON_RESOLVED,
    VISIBILITY_PUBLIC,
    Decision,
    MarketEvent,
    RejectionRecord,
    ResearchResult,
    TradeSignal,
)
from ..core.logger import get_logger

logger = get_logger('engine.decision')

_PROBABILITY_RE = re.compile(r"^[ \t]*PROBABILITY:[ \t]*(\d+(?:\.\d+)?)[ \t]*%[ \t\r]*$", re.MULTILINE)
_REASONING_RE = re.compile(r"^[ \t]*REASONING:(.*)\Z", re.MULTILINE | re.DOTALL)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def filter_market(event: MarketEvent, min_liquidity: float = 0.0) -> Optional[str]:
    """Return the reason code of the first failing predicate, or None."""
    if event.outcome_type != OUTCOME_BINARY:
        return REASON_NOT_BINARY
    if event.is_resolved:
        return REASON_RESOLVED
    if event.mechanism != MECHANISM_CPMM:
        return REASON_NOT_CPMM
    if event.visibility != VISIBILITY_PUBLIC:
        return REASON_NOT_PUBLIC
    if min_liquidity > 0 and (event.total_liquidity or 0.0) < min_liquidity:
        return REASON_LOW_LIQUIDITY
    return None


def parse_research_response(text: str, market_id: str) -> ResearchResult:
    """Extract ``PROBABILITY: <0-100>%`` and the ``REASONING:`` section.

    Raises ``ResearchError`` when either is missing or the percentage is
    out of range.
    """
    if not text:
        raise ResearchError("empty research response")
    match = _PROBABILITY_RE.search(text)
    if match is None:
        raise ResearchError("no PROBABILITY line in research response")
    pct = float(match.group(1))
    if not 0.0 <= pct <= 100.0:
        raise ResearchError(f"probability {pct}% outside 0-100")
    reasoning = _REASONING_RE.search(text)
    if reasoning is None:
        raise ResearchError("no REASONING section in research response")
    return ResearchResult(
        market_id=market_id,
        estimated_probability=pct / 100.0,
        reasoning=reasoning.group(1).strip(),
    )


def make_signal(event: MarketEvent, result: ResearchResult) -> TradeSignal:
    # parse_new_contract drops BINARY contracts without a probability
    if event.probability is None:
        raise ResearchError(f"market {event.id} has no market probability")
    return TradeSignal(
        market_id=event.id,
        question=event.question,
        market_probability=event.probability,
        estimated_probability=result.estimated_probability,
        edge=abs(result.estimated_probability - event.probability),
        reasoning=result.reasoning,
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class DecisionEngine:
    """Consumes markets, dispatches research, emits terminal records.

    Args:
        research: Collaborator returning free-text research for a question.
        decisions: Channel receiving every :class:`TradeSignal` and
            :class:`RejectionRecord`.  Closed when :meth:`run` ends.
        config: Engine knobs (liquidity floor, timeout, concurrency cap).
    """

    def __init__(
        self,
        research: ResearchCollaborator,
        decisions: Channel,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self._research = research
        self._decisions = decisions
        self._cfg = config or EngineConfig()
        self._tasks: Set[asyncio.Task] = set()
        self._limit = (
            asyncio.Semaphore(self._cfg.max_concurrent_research)
            if self._cfg.max_concurrent_research
            else None
        )

        self.received = 0
        self.research_dispatched = 0
        self.signals = 0
        self.research_failed = 0
        self.rejected_by_reason: Dict[str, int] = {}

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def run(self, feed: Channel) -> None:
        """Process ``feed`` until it closes, then wait for in-flight research.

        On cancellation every in-flight research task is cancelled and
        nothing further is emitted.
        """
        try:
            async for event in feed:
                self.handle(event)
            while self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
        finally:
            pending = [t for t in self._tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.info("Cancelled %d in-flight research task(s)", len(pending))
            self._decisions.close()

    def handle(self, event: MarketEvent) -> None:
        """Filter one market and either reject it or start its research."""
        self.received += 1
        reason = filter_market(event, self._cfg.min_liquidity)
        if reason is not None:
            self.rejected_by_reason[reason] = self.rejected_by_reason.get(reason, 0) + 1
            logger.debug("Rejected %s (%s): %s", event.id, reason, event.question)
            self._emit(RejectionRecord(market_id=event.id, reason_code=reason))
            return

        self.research_dispatched += 1
        logger.info("Researching %s: \"%s\"", event.id, event.question)
        task = asyncio.create_task(self._research_market(event), name=f"research-{event.id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    async def _research_market(self, event: MarketEvent) -> None:
        limit = self._limit or contextlib.nullcontext()
        try:
            async with limit:
                text = await asyncio.wait_for(
                    self._research.research(event.question, event.text_description or None),
                    timeout=self._cfg.research_timeout_s,
                )
            result = parse_research_response(text, event.id)
            signal = make_signal(event, result)
        except asyncio.TimeoutError:
            self._fail(event, f"research timed out after {self._cfg.research_timeout_s:.0f}s")
            return
        except ResearchError as e:
            self._fail(event, str(e))
            return
        except Exception as e:
            self._fail(event, f"{type(e).__name__}: {e}")
            return

        self.signals += 1
        self._emit(signal)

    def _fail(self, event: MarketEvent, detail: str) -> None:
        self.research_failed += 1
        logger.warning("Research failed for %s: %s", event.id, detail)
        self._emit(RejectionRecord(
            market_id=event.id,
            reason_code=REASON_RESEARCH_FAILED,
            detail=detail,
        ))

    def _emit(self, record: Decision) -> None:
        try:
            self._decisions.send(record)
        except ChannelClosed:
            logger.debug("Decision channel closed, dropping record for %s", record.market_id)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Research task %s crashed: %r", task.get_name(), exc)

    def get_status(self) -> Dict[str, Any]:
        return {
            "received": self.received,
            "research_dispatched": self.research_dispatched,
            "in_flight": self.in_flight,
            "signals": self.signals,
            "research_failed": self.research_failed,
            "rejected_by_reason": dict(self.rejected_by_reason),
        }
