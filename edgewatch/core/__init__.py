"""Core module - config, logging, records, errors and the event bridge."""
from .bridge import Channel, ChannelClosed, EventBridge
from .config import EngineConfig, StreamConfig, load_all_config, load_config, load_secrets
from .events import ConnectionState, MarketEvent, RejectionRecord, ResearchResult, TradeSignal
from .logger import get_logger, setup_logger
