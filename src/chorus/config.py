"""Configuration management and environment loading."""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .types import ConfigurationError, RetryConfig

_TRUE_VALUES = ("1", "true", "yes", "on")

# Provider key -> environment variable holding its API key
PROVIDER_API_KEYS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "cohere": "COHERE_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "groq": "GROQ_API_KEY",
    "xai": "XAI_API_KEY",
    "perplexity": "PERPLEXITYAI_API_KEY",
}


def parse_bool_flag(value: str | None) -> bool:
    """Interpret an environment flag; accepts 1/true/yes/on (case-insensitive)."""
    if value is None:
        return False
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class OrchestratorConfig:
    """Main configuration for a ConversationOrchestrator.

    All delays are in milliseconds, all timeouts in seconds.
    """

    # Context bounds
    max_messages: int = 100
    ai_context_size: int = 50
    summary_window: int = 5

    # Loop prevention and concurrency
    max_ai_messages: int = 10
    max_concurrent_responses: int = 2

    # Scheduler delay range (drawn uniformly when natural pacing is off)
    min_background_delay: int = 30_000
    max_background_delay: int = 90_000

    # Natural pacing (user replies, staggering, typing awareness)
    natural_pacing: bool = False
    min_user_response_delay: int = 4_000
    max_user_response_delay: int = 22_000
    min_delay_between_ai: int = 6_000
    max_delay_between_ai: int = 18_000
    min_first_responder_delay: int = 2_500
    max_first_responder_delay: int = 4_500
    mentioned_delay_multiplier: float = 0.35
    min_mentioned_delay: int = 400
    catch_up_multiplier: float = 1_500.0
    typing_awareness_delay: int = 2_500
    typing_awareness_max_multiplier: float = 3.0

    # Strategy
    mention_window: int = 1
    random_mention_probability: float = 0.35
    topic_change_chance: float = 0.1

    # Post-processing
    max_sentences: int = 15
    max_response_chars: int = 1_200
    max_unique_mentions: int = 2

    # Background conversation
    background_enabled: bool = True
    silence_timeout: float = 120.0
    sleep_retry_interval: float = 30.0

    # Adapter boundary
    response_timeout: float = 60.0
    retry: RetryConfig = field(default_factory=RetryConfig)

    # Prompting and logging
    personas_enabled: bool = False
    verbose_context_logging: bool = False
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if self.max_messages < 1:
            raise ConfigurationError(f"max_messages must be >= 1, got {self.max_messages}")
        if self.min_background_delay < 0 or self.max_background_delay < 0:
            raise ConfigurationError("Background delays must be non-negative")
        if self.min_background_delay > self.max_background_delay:
            raise ConfigurationError(
                f"min_background_delay ({self.min_background_delay}) exceeds "
                f"max_background_delay ({self.max_background_delay})"
            )
        if self.max_concurrent_responses < 1:
            raise ConfigurationError("max_concurrent_responses must be >= 1")
        if not isinstance(getattr(logging, self.log_level.upper(), None), int):
            raise ConfigurationError(f"Unknown log_level: {self.log_level}")

    @classmethod
    def from_env(cls, **overrides: Any) -> "OrchestratorConfig":
        """Create config from CHORUS_ prefixed environment variables.

        Keyword overrides are applied after the environment is read.
        """
        values: dict[str, Any] = {}

        def read(name: str, attr: str, cast: Callable[[str], Any]) -> None:
            raw = os.getenv(f"CHORUS_{name}")
            if raw is None or raw == "":
                return
            try:
                values[attr] = cast(raw)
            except ValueError:
                raise ConfigurationError(f"Invalid CHORUS_{name}: {raw}")

        read("MAX_MESSAGES", "max_messages", int)
        read("AI_CONTEXT_SIZE", "ai_context_size", int)
        read("MAX_AI_MESSAGES", "max_ai_messages", int)
        read("MAX_CONCURRENT_RESPONSES", "max_concurrent_responses", int)
        read("MIN_BACKGROUND_DELAY", "min_background_delay", int)
        read("MAX_BACKGROUND_DELAY", "max_background_delay", int)
        read("MIN_USER_RESPONSE_DELAY", "min_user_response_delay", int)
        read("MAX_USER_RESPONSE_DELAY", "max_user_response_delay", int)
        read("RESPONSE_TIMEOUT", "response_timeout", float)
        read("SILENCE_TIMEOUT", "silence_timeout", float)
        read("MAX_SENTENCES", "max_sentences", int)
        read("MAX_UNIQUE_MENTIONS", "max_unique_mentions", int)

        for name, attr in (
            ("ENABLE_PERSONAS", "personas_enabled"),
            ("VERBOSE_CONTEXT", "verbose_context_logging"),
            ("NATURAL_PACING", "natural_pacing"),
            ("BACKGROUND_ENABLED", "background_enabled"),
        ):
            raw = os.getenv(f"CHORUS_{name}")
            if raw is not None:
                values[attr] = parse_bool_flag(raw)

        if log_level := os.getenv("CHORUS_LOG_LEVEL"):
            values["log_level"] = log_level.upper()

        retry = RetryConfig()
        if attempts := os.getenv("CHORUS_RETRY_ATTEMPTS"):
            try:
                retry.max_attempts = int(attempts)
            except ValueError:
                raise ConfigurationError(f"Invalid CHORUS_RETRY_ATTEMPTS: {attempts}")
        values["retry"] = retry

        values.update(overrides)
        return cls(**values)


def load_env_files(
    env_file: str | Path | None = None,
    env_files: list[str | Path] | None = None,
) -> None:
    """
    Load environment variables from .env files.

    Args:
        env_file: Single env file to load
        env_files: Multiple env files to load (later files override earlier)
    """
    files_to_load: list[Path] = []

    if env_files:
        files_to_load.extend(Path(f) for f in env_files)
    elif env_file:
        files_to_load.append(Path(env_file))
    else:
        default_env = Path(".env")
        if default_env.exists():
            files_to_load.append(default_env)

    for file_path in files_to_load:
        if file_path.exists():
            load_dotenv(file_path, override=True)


def validate_api_keys(required_providers: list[str] | None = None) -> dict[str, bool]:
    """
    Check which provider API keys are configured.

    Args:
        required_providers: If provided, raise error if any are missing

    Returns:
        Dict mapping provider keys to whether their key is set
    """
    results = {
        provider: bool(os.getenv(env_var))
        for provider, env_var in PROVIDER_API_KEYS.items()
    }

    if required_providers:
        missing = [p for p in required_providers if not results.get(p)]
        if missing:
            raise ConfigurationError(
                f"Missing API keys for providers: {', '.join(missing)}. "
                f"Set the corresponding environment variables."
            )

    return results
