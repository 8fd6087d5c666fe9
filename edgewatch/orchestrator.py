"""
Edgewatch Orchestrator
======================

Wires the streaming core together::

    ReconnectSupervisor --markets--> DecisionEngine --decisions--+
            |                                                    v
            +-------------------markets----------------------> EventBridge --> consumer

``Pipeline`` is the injectable core: it is handed its collaborators and
settings explicitly and exposes the bridge output for any consumer.
``EdgewatchOrchestrator`` adds config loading, startup authentication and
the default logging consumer on top.
"""

from __future__ import annotations

import asyncio
import signal
from typing import Any, Dict, List, Optional

from .connectors.manifold_rest import ManifoldRestClient
from .connectors.manifold_ws import ManifoldStreamClient
from .connectors.reconnect import ReconnectSupervisor
from .connectors.xai_research import ResearchCollaborator, XaiResearchClient
from .core.bridge import Channel, EventBridge
from .core.config import (
    EngineConfig,
    StreamConfig,
    get_secret,
    load_all_config,
    validate_secrets,
)
from .core.errors import ConfigurationError
from .core.events import MarketEvent, RejectionRecord, TradeSignal
from .core.logger import get_logger, setup_logger
from .engine.decision import DecisionEngine


class Pipeline:
    """Supervisor, decision engine and bridge running as sibling tasks.

    Args:
        research: Research collaborator used by the decision engine.
        stream_config: Streaming connection settings.
        engine_config: Decision engine settings.
        client: Optional pre-built stream client (tests inject fakes here).
    """

    def __init__(
        self,
        research: ResearchCollaborator,
        stream_config: Optional[StreamConfig] = None,
        engine_config: Optional[EngineConfig] = None,
        *,
        client: Optional[ManifoldStreamClient] = None,
        sleep=asyncio.sleep,
    ) -> None:
        self.stream_config = stream_config or StreamConfig()
        self.engine_config = engine_config or EngineConfig()

        self.engine_feed = Channel("engine.feed")
        self.bridge_markets = Channel("markets")
        self.decisions = Channel("decisions")

        self.supervisor = ReconnectSupervisor(
            [self.engine_feed, self.bridge_markets],
            self.stream_config,
            client=client,
            sleep=sleep,
        )
        self.engine = DecisionEngine(research, self.decisions, self.engine_config)
        self.bridge = EventBridge(self.bridge_markets, self.decisions)
        self._tasks: List[asyncio.Task] = []

    @property
    def output(self) -> Channel:
        """Merged stream of MarketEvent, TradeSignal and RejectionRecord."""
        return self.bridge.output

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self.supervisor.run(), name="reconnect-supervisor"),
            asyncio.create_task(self.engine.run(self.engine_feed), name="decision-engine"),
            asyncio.create_task(self.bridge.run(), name="event-bridge"),
        ]

    async def stop(self) -> None:
        """Cancel reconnects, close the socket, cancel in-flight research.

        The supervisor goes first so no new market is accepted while the
        engine is tearing down its research tasks.
        """
        for task in self._tasks:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._tasks = []

    def get_status(self) -> Dict[str, Any]:
        return {
            "supervisor": self.supervisor.get_status(),
            "engine": self.engine.get_status(),
            "bridge": self.bridge.get_status(),
        }


class EdgewatchOrchestrator:
    """
    Main edgewatch orchestrator.

    Coordinates:
    - Config and secrets loading
    - API key validation against the Manifold REST API
    - The streaming pipeline
    - Logging every record that leaves the bridge
    """

    def __init__(self, config_dir: str = "config"):
        self.config = load_all_config(config_dir)
        self.secrets = self.config.get('secrets', {})

        system = self.config.get('system', {})
        setup_logger('edgewatch', level=system.get('log_level', 'INFO'), log_dir=system.get('log_dir'))
        self.logger = get_logger('orchestrator')

        issues = validate_secrets(self.secrets)
        if issues:
            raise ConfigurationError("; ".join(issues))

        self.stream_config = StreamConfig.from_dict(self.config.get('stream'))
        self.engine_config = EngineConfig.from_dict(self.config.get('engine'))
        research_cfg = self.config.get('research', {})

        self.rest = ManifoldRestClient(get_secret(self.secrets, 'manifold', 'api_key'))
        self.research = XaiResearchClient(
            get_secret(self.secrets, 'xai', 'api_key'),
            model=research_cfg.get('model', XaiResearchClient.DEFAULT_MODEL),
            timeout_s=self.engine_config.research_timeout_s,
        )
        self.pipeline: Optional[Pipeline] = None
        self._stopped = False

    async def setup(self) -> None:
        """Validate the API key once; the account is only logged."""
        account = await self.rest.get_me()
        self.logger.info(
            "Authenticated as @%s (%s), balance M$%.0f",
            account.username, account.name, account.balance,
        )
        await self.rest.close()

    async def run(self) -> None:
        """Start the pipeline and consume its output until it closes."""
        self.pipeline = Pipeline(self.research, self.stream_config, self.engine_config)
        self.logger.info(
            "Starting edgewatch (topics=%s, min_edge=%.0f%%, reconnect_delay=%.0fs)",
            ", ".join(self.stream_config.topics),
            self.engine_config.min_edge * 100,
            self.stream_config.reconnect_delay_s,
        )
        self.pipeline.start()
        await consume(self.pipeline.output, self.engine_config.min_edge)

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self.logger.info("Stopping edgewatch...")
        if self.pipeline is not None:
            await self.pipeline.stop()
            self.logger.info("Final status: %s", self.pipeline.get_status())
        await self.rest.close()


async def consume(output: Channel, min_edge: float) -> None:
    """Default consumer: log every record, flag signals at/above ``min_edge``."""
    logger = get_logger('consumer')
    async for record in output:
        if isinstance(record, MarketEvent):
            logger.info("New market %s: \"%s\" [%s]", record.id, record.question, record.outcome_type)
        elif isinstance(record, TradeSignal):
            line = (
                f"\"{record.question}\" est {record.estimated_probability:.0%} vs market "
                f"{record.market_probability:.0%}, edge {record.edge:.1%} -> {record.direction}"
            )
            if record.edge >= min_edge:
                logger.warning("SIGNAL %s | %s", line, record.reasoning)
            else:
                logger.info("Below min edge %s", line)
        elif isinstance(record, RejectionRecord):
            logger.info("Rejected %s: %s %s", record.market_id, record.reason_code, record.detail)


async def main(config_dir: str = "config") -> None:
    """Entry point for edgewatch."""
    app = EdgewatchOrchestrator(config_dir)

    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()

    def signal_handler():
        main_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        await app.setup()
        await app.run()
    except asyncio.CancelledError:
        pass
    finally:
        await app.stop()
