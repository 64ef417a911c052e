"""Tests for environment-driven configuration."""

import importlib
import logging

import pytest

from governance_hooks import constants
from governance_hooks.config import ConfigError, configure_logging, load_config
from governance_hooks.constants import DEFAULT_INTENTS_PATH, DEFAULT_LEDGER_PATH


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in (
        "GOVERNANCE_WORKSPACE",
        "GOVERNANCE_INTENTS_PATH",
        "GOVERNANCE_LEDGER_PATH",
        "GOVERNANCE_STRICT_INTENTS",
        "GOVERNANCE_APPROVAL_TIMEOUT_S",
        "GOVERNANCE_APPROVAL_URL",
        "GOVERNANCE_LEDGER_RETRIES",
        "GOVERNANCE_MODEL_ID",
        "GOVERNANCE_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        config = load_config(workspace=str(tmp_path))
        assert config.workspace == tmp_path.resolve()
        assert config.intents_path == DEFAULT_INTENTS_PATH
        assert config.ledger_path == DEFAULT_LEDGER_PATH
        assert config.strict_intents is False
        assert config.approval_url is None
        assert config.ledger_retries == 3
        assert config.model_identifier == "unknown"
        assert config.log_level == "INFO"

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GOVERNANCE_WORKSPACE", str(tmp_path))
        monkeypatch.setenv("GOVERNANCE_STRICT_INTENTS", "yes")
        monkeypatch.setenv("GOVERNANCE_APPROVAL_TIMEOUT_S", "2.5")
        monkeypatch.setenv("GOVERNANCE_APPROVAL_URL", "http://policy.local/approve")
        monkeypatch.setenv("GOVERNANCE_LEDGER_RETRIES", "5")
        monkeypatch.setenv("GOVERNANCE_MODEL_ID", "model-x")
        monkeypatch.setenv("GOVERNANCE_LOG_LEVEL", "debug")

        config = load_config()
        assert config.workspace == tmp_path.resolve()
        assert config.strict_intents is True
        assert config.approval_timeout_s == 2.5
        assert config.approval_url == "http://policy.local/approve"
        assert config.ledger_retries == 5
        assert config.model_identifier == "model-x"
        assert config.log_level == "DEBUG"

    def test_explicit_workspace_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GOVERNANCE_WORKSPACE", "/somewhere/else")
        assert load_config(workspace=str(tmp_path)).workspace == tmp_path.resolve()

    @pytest.mark.parametrize("var, value", [
        ("GOVERNANCE_STRICT_INTENTS", "maybe"),
        ("GOVERNANCE_APPROVAL_TIMEOUT_S", "soon"),
        ("GOVERNANCE_APPROVAL_TIMEOUT_S", "-1"),
        ("GOVERNANCE_LEDGER_RETRIES", "0"),
        ("GOVERNANCE_LOG_LEVEL", "LOUD"),
    ])
    def test_invalid_values(self, tmp_path, monkeypatch, var, value):
        monkeypatch.setenv(var, value)
        with pytest.raises(ConfigError, match=var):
            load_config(workspace=str(tmp_path))


class TestConstants:
    def test_defaults_ignore_the_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GOVERNANCE_APPROVAL_TIMEOUT_S", "abc")
        reloaded = importlib.reload(constants)
        assert reloaded.DEFAULT_APPROVAL_TIMEOUT_S == 120.0
        with pytest.raises(ConfigError, match="GOVERNANCE_APPROVAL_TIMEOUT_S"):
            load_config(workspace=str(tmp_path))


class TestConfigureLogging:
    def test_idempotent(self, monkeypatch):
        logger = logging.getLogger("governance_hooks")
        monkeypatch.setattr(logger, "handlers", [])
        monkeypatch.setattr(logger, "level", logger.level)
        monkeypatch.setattr(logger, "_governance_configured", False, raising=False)

        configure_logging("WARNING")
        configure_logging("DEBUG")
        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
