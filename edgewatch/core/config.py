"""
Edgewatch Configuration Loader
==============================

Loads and validates YAML configuration files and builds the typed
settings objects handed to the streaming core.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import yaml

from .errors import ConfigurationError

DEFAULT_WS_URL = "wss://api.manifold.markets/ws"
TOPIC_NEW_CONTRACT = "global/new-contract"


def load_yaml(path: str) -> Dict[str, Any]:
    """Load a YAML file."""
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def find_repo_root(start: Optional[Path] = None) -> Path:
    """Locate the repo root by walking upward for known anchors."""
    start_path = (start or Path.cwd()).resolve()
    for current in [start_path, *start_path.parents]:
        if (current / ".git").exists() or (current / "config" / "config.yaml").exists():
            return current
    return start_path


def _resolve_path(path: str) -> Path:
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    repo_root = find_repo_root(Path(__file__).resolve())
    return repo_root / candidate


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load main configuration file.

    Args:
        config_path: Path to config.yaml

    Returns:
        Configuration dictionary
    """
    path = _resolve_path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    return load_yaml(str(path))


def load_secrets(secrets_path: str = "config/secrets.yaml") -> Dict[str, Any]:
    """
    Load secrets, with environment overrides for the API keys.

    ``EDGEWATCH_SECRETS`` replaces the path.  ``MANIFOLD_API_KEY`` and
    ``XAI_API_KEY`` take precedence over the file; when both are set the
    file is optional.
    """
    override_path = os.getenv("EDGEWATCH_SECRETS")
    if override_path:
        secrets_path = override_path

    path = _resolve_path(secrets_path)
    secrets: Dict[str, Any] = {}
    if path.exists():
        secrets = load_yaml(str(path))

    env_keys = {
        'manifold': os.getenv("MANIFOLD_API_KEY"),
        'xai': os.getenv("XAI_API_KEY"),
    }
    for service, value in env_keys.items():
        if value:
            secrets.setdefault(service, {})['api_key'] = value

    if not path.exists() and not all(env_keys.values()):
        raise ConfigurationError(
            f"Secrets file not found: {secrets_path}\n"
            f"Copy config/secrets.template.yaml to config/secrets.yaml and add your API keys, "
            f"or set MANIFOLD_API_KEY and XAI_API_KEY."
        )
    return secrets


def load_all_config(config_dir: str = "config") -> Dict[str, Any]:
    """
    Load config.yaml and secrets and merge them.

    Returns:
        Configuration with an added 'secrets' key
    """
    config_dir = Path(config_dir)
    config = load_config(str(config_dir / "config.yaml"))
    secrets = load_secrets(str(config_dir / "secrets.yaml"))
    return {**config, 'secrets': secrets}


def validate_secrets(secrets: Dict[str, Any]) -> list:
    """
    Validate that required secrets are present.

    Returns:
        List of missing/invalid secret names
    """
    issues = []
    required = {
        'manifold': ['api_key'],
        'xai': ['api_key'],
    }

    for service, keys in required.items():
        if service not in secrets:
            issues.append(f"Missing {service} configuration")
            continue

        for key in keys:
            value = str(secrets[service].get(key) or '')
            if not value or value.startswith('PASTE_') or value.startswith('YOUR_'):
                issues.append(f"Missing or placeholder: {service}.{key}")

    return issues


def get_secret(secrets: Dict, service: str, key: str) -> Optional[str]:
    """Safely get a secret value."""
    return secrets.get(service, {}).get(key)


# ---------------------------------------------------------------------------
# Typed settings
# ---------------------------------------------------------------------------

def _build(cls, data: Optional[Dict[str, Any]]):
    data = dict(data or {})
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown {cls.__name__} keys: {', '.join(unknown)}")
    if 'topics' in data:
        data['topics'] = tuple(data['topics'])
    try:
        return cls(**data)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid {cls.__name__}: {e}") from e


@dataclass(frozen=True)
class StreamConfig:
    """Endpoint, timeouts and reconnect delay for the streaming connection."""

    endpoint: str = DEFAULT_WS_URL
    topics: Tuple[str, ...] = (TOPIC_NEW_CONTRACT,)

    # Keepalive
    ping_interval_s: float = 30.0

    # Staleness thresholds
    subscribe_ack_timeout_s: float = 120.0
    ping_ack_timeout_s: float = 60.0
    idle_timeout_s: float = 300.0

    # Fixed reconnect delay (not exponential)
    reconnect_delay_s: float = 3.0

    # How often the reader wakes without traffic to run staleness checks
    check_interval_s: float = 1.0

    def __post_init__(self) -> None:
        if not self.topics:
            raise ValueError("at least one topic is required")
        for name in ("ping_interval_s", "subscribe_ack_timeout_s", "ping_ack_timeout_s",
                     "idle_timeout_s", "check_interval_s"):
            if float(getattr(self, name)) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.reconnect_delay_s < 0:
            raise ValueError("reconnect_delay_s must be >= 0")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StreamConfig":
        return _build(cls, data)


@dataclass(frozen=True)
class EngineConfig:
    """Decision engine knobs.

    ``min_edge`` is consumer policy only: the engine emits every researched
    market regardless of edge.  ``max_concurrent_research`` of ``None``
    leaves research concurrency unbounded.
    """

    min_edge: float = 0.10
    min_liquidity: float = 0.0
    research_timeout_s: float = 120.0
    max_concurrent_research: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.min_edge <= 1.0:
            raise ValueError("min_edge must be within [0, 1]")
        if self.min_liquidity < 0:
            raise ValueError("min_liquidity must be >= 0")
        if self.research_timeout_s <= 0:
            raise ValueError("research_timeout_s must be positive")
        if self.max_concurrent_research is not None and self.max_concurrent_research < 1:
            raise ValueError("max_concurrent_research must be >= 1 or null")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EngineConfig":
        return _build(cls, data)
