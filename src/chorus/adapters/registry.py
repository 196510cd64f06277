"""Registry mapping provider keys to adapter factories."""

import logging
from collections.abc import Callable, Mapping
from functools import partial

from ..config import PROVIDER_API_KEYS
from ..participants import ParticipantConfig
from ..types import ConfigurationError, RetryConfig
from .base import AgentAdapter
from .litellm_adapter import LiteLLMAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[ParticipantConfig], AgentAdapter]


class AdapterRegistry:
    """
    Maps provider keys to factories returning agent adapters.

    Keys are case-insensitive. Registries are plain objects handed to the
    orchestrator, so tests can swap factories and restore them afterwards.

    Example:
        registry = AdapterRegistry()
        registry.register("fake", lambda config: FakeAdapter(config.model_key))

        saved = registry.snapshot()
        registry.register("openai", lambda config: FakeAdapter("stub"))
        ...
        registry.restore(saved)
    """

    def __init__(self, factories: Mapping[str, AdapterFactory] | None = None):
        self._factories: dict[str, AdapterFactory] = {}
        for key, factory in (factories or {}).items():
            self.register(key, factory)

    def register(self, provider_key: str, factory: AdapterFactory) -> "AdapterRegistry":
        """Register (or replace) the factory for a provider. Returns self for chaining."""
        self._factories[provider_key.lower()] = factory
        logger.debug("Registered adapter factory for provider '%s'", provider_key.lower())
        return self

    def unregister(self, provider_key: str) -> bool:
        return self._factories.pop(provider_key.lower(), None) is not None

    def __contains__(self, provider_key: object) -> bool:
        return isinstance(provider_key, str) and provider_key.lower() in self._factories

    def providers(self) -> list[str]:
        return sorted(self._factories)

    def create(self, config: ParticipantConfig) -> AgentAdapter:
        """
        Build an adapter for a participant.

        Raises:
            ConfigurationError: Unknown provider key, or the factory rejected the config
        """
        factory = self._factories.get(config.provider_key.lower())
        if factory is None:
            raise ConfigurationError(
                f"Unknown provider '{config.provider_key}'. "
                f"Registered providers: {', '.join(self.providers()) or 'none'}"
            )
        try:
            return factory(config)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid configuration for {config.participant_id}: {e}"
            ) from e

    def snapshot(self) -> dict[str, AdapterFactory]:
        return dict(self._factories)

    def restore(self, snapshot: Mapping[str, AdapterFactory]) -> None:
        self._factories = dict(snapshot)


def default_registry(retry: RetryConfig | None = None) -> AdapterRegistry:
    """A registry routing every known provider through litellm, sharing one retry config."""
    registry = AdapterRegistry()
    factory = partial(LiteLLMAdapter.from_config, retry=retry)
    for provider_key in PROVIDER_API_KEYS:
        registry.register(provider_key, factory)
    return registry
