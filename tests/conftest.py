"""Pytest configuration and fixtures."""

import asyncio
import os
from collections.abc import Callable
from typing import Any

import pytest

from chorus.adapters import AdapterRegistry, BaseAgentAdapter
from chorus.config import OrchestratorConfig
from chorus.participants import ParticipantConfig
from chorus.types import AgentResponse, ConfigurationError, Message, UsageInfo


class FakeAdapter(BaseAgentAdapter):
    """Scripted adapter: replies in order, optionally waits, fails or refuses to start."""

    def __init__(
        self,
        model: str,
        name: str | None = None,
        replies: list[str] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
        fail_init: bool = False,
        **kwargs: Any,
    ):
        super().__init__(model=model, name=name, **kwargs)
        self.replies = list(replies or ["Sounds good to me."])
        self.error = error
        self.delay = delay
        self.fail_init = fail_init
        self.calls: list[list[Message]] = []
        self.contexts: list[dict[str, Any]] = []
        self.shutdown_calls = 0
        self.health_checks = 0
        self.healthy = True

    async def _initialize(self, options: dict[str, Any]) -> None:
        if self.fail_init:
            raise ConfigurationError(f"{self.name} has no credentials")

    async def _generate(
        self,
        messages: list[Message],
        context: dict[str, Any],
    ) -> AgentResponse:
        self.calls.append(messages)
        self.contexts.append(context)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        reply = self.replies[min(len(self.calls), len(self.replies)) - 1]
        return AgentResponse(
            content=reply,
            model=self.model,
            finish_reason="stop",
            usage=UsageInfo(input_tokens=10, output_tokens=5, total_tokens=15),
        )

    async def _health_check(self) -> bool:
        self.health_checks += 1
        return self.healthy

    async def _shutdown(self) -> None:
        self.shutdown_calls += 1


def fake_factory(config: ParticipantConfig) -> FakeAdapter:
    return FakeAdapter(config.model_key, name=config.display_name, **config.options)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clean environment variables before each test."""
    # Remove any CHORUS_ env vars that might interfere
    for key in list(os.environ.keys()):
        if key.startswith("CHORUS_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def fake_adapter_cls() -> type[FakeAdapter]:
    return FakeAdapter


@pytest.fixture
def registry() -> AdapterRegistry:
    """A registry whose "fake" provider builds FakeAdapters from config options."""
    return AdapterRegistry({"fake": fake_factory})


@pytest.fixture
def fast_config() -> OrchestratorConfig:
    """Config with millisecond delays and no background loop."""
    return OrchestratorConfig(
        min_background_delay=5,
        max_background_delay=5,
        background_enabled=False,
        response_timeout=1.0,
    )


@pytest.fixture
def make_config() -> Callable[..., ParticipantConfig]:
    """Build a fake-provider participant config."""

    def _make(alias: str, display_name: str | None = None, **options: Any) -> ParticipantConfig:
        return ParticipantConfig(
            provider_key="fake",
            model_key=f"{alias}-model",
            display_name=display_name or alias.capitalize(),
            alias=alias,
            options=options,
        )

    return _make
