"""Connectors module - Manifold streaming/REST clients and the research client."""
from .manifold_rest import ManifoldRestClient
from .manifold_ws import ManifoldStreamClient
from .reconnect import ReconnectSupervisor
from .xai_research import XaiResearchClient
