"""Engine module - market filtering and edge decisions."""
from .decision import DecisionEngine, filter_market, parse_research_response
