"""Tests for configuration management."""

import pytest

from chorus.config import (
    OrchestratorConfig,
    load_env_files,
    parse_bool_flag,
    validate_api_keys,
)
from chorus.types import ConfigurationError


class TestOrchestratorConfig:
    """Tests for OrchestratorConfig."""

    def test_defaults(self):
        """Test default values."""
        config = OrchestratorConfig()
        assert config.max_messages == 100
        assert config.ai_context_size == 50
        assert config.max_ai_messages == 10
        assert config.max_concurrent_responses == 2
        assert config.min_background_delay == 30_000
        assert config.max_background_delay == 90_000
        assert config.natural_pacing is False
        assert config.personas_enabled is False
        assert config.retry.max_attempts == 3

    def test_validation(self):
        """Test that invalid bounds are rejected."""
        with pytest.raises(ConfigurationError):
            OrchestratorConfig(max_messages=0)
        with pytest.raises(ConfigurationError):
            OrchestratorConfig(min_background_delay=-1)
        with pytest.raises(ConfigurationError):
            OrchestratorConfig(min_background_delay=10, max_background_delay=5)
        with pytest.raises(ConfigurationError):
            OrchestratorConfig(max_concurrent_responses=0)
        with pytest.raises(ConfigurationError, match="log_level"):
            OrchestratorConfig(log_level="loud")

    def test_from_env(self, monkeypatch):
        """Test loading from environment variables."""
        monkeypatch.setenv("CHORUS_MAX_MESSAGES", "40")
        monkeypatch.setenv("CHORUS_MAX_AI_MESSAGES", "4")
        monkeypatch.setenv("CHORUS_RESPONSE_TIMEOUT", "12.5")
        monkeypatch.setenv("CHORUS_ENABLE_PERSONAS", "yes")
        monkeypatch.setenv("CHORUS_BACKGROUND_ENABLED", "0")
        monkeypatch.setenv("CHORUS_LOG_LEVEL", "debug")
        monkeypatch.setenv("CHORUS_RETRY_ATTEMPTS", "5")

        config = OrchestratorConfig.from_env()
        assert config.max_messages == 40
        assert config.max_ai_messages == 4
        assert config.response_timeout == 12.5
        assert config.personas_enabled is True
        assert config.background_enabled is False
        assert config.log_level == "DEBUG"
        assert config.retry.max_attempts == 5

    def test_from_env_overrides(self, monkeypatch):
        """Test that keyword overrides beat the environment."""
        monkeypatch.setenv("CHORUS_MAX_MESSAGES", "40")
        config = OrchestratorConfig.from_env(max_messages=7)
        assert config.max_messages == 7

    def test_from_env_invalid(self, monkeypatch):
        """Test that malformed values raise ConfigurationError."""
        monkeypatch.setenv("CHORUS_MAX_MESSAGES", "lots")
        with pytest.raises(ConfigurationError, match="CHORUS_MAX_MESSAGES"):
            OrchestratorConfig.from_env()

    def test_from_env_defaults(self):
        """Test that an empty environment gives defaults."""
        assert OrchestratorConfig.from_env() == OrchestratorConfig()


class TestParseBoolFlag:
    """Tests for parse_bool_flag."""

    @pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes", "on", " On "])
    def test_truthy(self, value):
        assert parse_bool_flag(value)

    @pytest.mark.parametrize("value", [None, "", "0", "false", "off", "maybe"])
    def test_falsy(self, value):
        assert not parse_bool_flag(value)


class TestEnvFiles:
    """Tests for .env loading."""

    def test_load_env_file(self, tmp_path, monkeypatch):
        """Test that values from a .env file are loaded."""
        monkeypatch.setenv("CHORUS_MAX_MESSAGES", "1")
        env_file = tmp_path / ".env"
        env_file.write_text("CHORUS_MAX_MESSAGES=7\n")
        load_env_files(env_file)
        assert OrchestratorConfig.from_env().max_messages == 7

    def test_later_files_override(self, tmp_path, monkeypatch):
        """Test that later files win."""
        monkeypatch.setenv("CHORUS_MAX_SENTENCES", "1")
        first = tmp_path / "base.env"
        second = tmp_path / "local.env"
        first.write_text("CHORUS_MAX_SENTENCES=3\n")
        second.write_text("CHORUS_MAX_SENTENCES=9\n")
        load_env_files(env_files=[first, second])
        assert OrchestratorConfig.from_env().max_sentences == 9


class TestValidateApiKeys:
    """Tests for API key validation."""

    def test_reports_presence(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        results = validate_api_keys()
        assert results["openai"] is True
        assert results["anthropic"] is False

    def test_missing_required(self, monkeypatch):
        """Test that missing required keys raise."""
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="anthropic"):
            validate_api_keys(["anthropic"])
