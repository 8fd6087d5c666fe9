"""
Tests for configuration loading and the typed settings objects.
"""

from __future__ import annotations

import pytest

from edgewatch.core.config import (
    DEFAULT_WS_URL,
    TOPIC_NEW_CONTRACT,
    EngineConfig,
    StreamConfig,
    load_all_config,
    load_config,
    load_secrets,
    validate_secrets,
)
from edgewatch.core.errors import ConfigurationError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("EDGEWATCH_SECRETS", "MANIFOLD_API_KEY", "XAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


class TestStreamConfig:

    def test_defaults(self):
        cfg = StreamConfig()
        assert cfg.endpoint == DEFAULT_WS_URL
        assert cfg.topics == (TOPIC_NEW_CONTRACT,)
        assert cfg.ping_interval_s == 30
        assert cfg.subscribe_ack_timeout_s == 120
        assert cfg.ping_ack_timeout_s == 60
        assert cfg.idle_timeout_s == 300
        assert cfg.reconnect_delay_s == 3

    def test_from_dict(self):
        cfg = StreamConfig.from_dict({"topics": ["a", "b"], "reconnect_delay_s": 5})
        assert cfg.topics == ("a", "b")
        assert cfg.reconnect_delay_s == 5

    def test_from_none(self):
        assert StreamConfig.from_dict(None) == StreamConfig()

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="ping_intervall"):
            StreamConfig.from_dict({"ping_intervall": 10})

    @pytest.mark.parametrize("data", [
        {"topics": []},
        {"ping_interval_s": 0},
        {"idle_timeout_s": -1},
        {"reconnect_delay_s": -3},
    ])
    def test_invalid_values(self, data):
        with pytest.raises(ConfigurationError):
            StreamConfig.from_dict(data)


class TestEngineConfig:

    def test_defaults(self):
        cfg = EngineConfig()
        assert cfg.min_edge == pytest.approx(0.10)
        assert cfg.min_liquidity == 0
        assert cfg.research_timeout_s == 120
        assert cfg.max_concurrent_research is None

    @pytest.mark.parametrize("data", [
        {"min_edge": 1.5},
        {"min_edge": -0.1},
        {"min_liquidity": -1},
        {"research_timeout_s": 0},
        {"max_concurrent_research": 0},
    ])
    def test_invalid_values(self, data):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_dict(data)


class TestLoaders:

    def test_missing_config(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(str(tmp_path / "config.yaml"))

    def test_empty_config_is_empty_dict(self, tmp_path):
        path = _write(tmp_path / "config.yaml", "")
        assert load_config(str(path)) == {}

    def test_secrets_file(self, tmp_path):
        path = _write(tmp_path / "secrets.yaml", "manifold:\n  api_key: m-key\nxai:\n  api_key: x-key\n")
        secrets = load_secrets(str(path))
        assert secrets["manifold"]["api_key"] == "m-key"
        assert secrets["xai"]["api_key"] == "x-key"

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = _write(tmp_path / "secrets.yaml", "manifold:\n  api_key: m-key\nxai:\n  api_key: x-key\n")
        monkeypatch.setenv("XAI_API_KEY", "env-x")
        secrets = load_secrets(str(path))
        assert secrets["manifold"]["api_key"] == "m-key"
        assert secrets["xai"]["api_key"] == "env-x"

    def test_env_only(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MANIFOLD_API_KEY", "env-m")
        monkeypatch.setenv("XAI_API_KEY", "env-x")
        secrets = load_secrets(str(tmp_path / "missing.yaml"))
        assert validate_secrets(secrets) == []

    def test_missing_secrets_without_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MANIFOLD_API_KEY", "env-m")
        with pytest.raises(ConfigurationError, match="Secrets file not found"):
            load_secrets(str(tmp_path / "missing.yaml"))

    def test_secrets_path_override(self, tmp_path, monkeypatch):
        path = _write(tmp_path / "elsewhere.yaml", "manifold:\n  api_key: m\nxai:\n  api_key: x\n")
        monkeypatch.setenv("EDGEWATCH_SECRETS", str(path))
        assert load_secrets(str(tmp_path / "ignored.yaml"))["manifold"]["api_key"] == "m"

    def test_load_all_config(self, tmp_path):
        _write(tmp_path / "config.yaml", "engine:\n  min_edge: 0.2\n")
        _write(tmp_path / "secrets.yaml", "manifold:\n  api_key: m\nxai:\n  api_key: x\n")
        config = load_all_config(str(tmp_path))
        assert config["engine"] == {"min_edge": 0.2}
        assert config["secrets"]["xai"]["api_key"] == "x"


class TestValidateSecrets:

    def test_placeholders_reported(self):
        issues = validate_secrets({
            "manifold": {"api_key": "PASTE_YOUR_MANIFOLD_KEY"},
            "xai": {"api_key": ""},
        })
        assert issues == [
            "Missing or placeholder: manifold.api_key",
            "Missing or placeholder: xai.api_key",
        ]

    def test_missing_service(self):
        assert validate_secrets({"manifold": {"api_key": "m"}}) == ["Missing xai configuration"]
