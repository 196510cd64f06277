"""Generic agent adapter backed by litellm."""

import logging
import os
from typing import Any

import litellm

from ..config import PROVIDER_API_KEYS
from ..participants import ParticipantConfig
from ..types import (
    AgentResponse,
    AIServiceError,
    ConfigurationError,
    Message,
    NetworkError,
    RetryConfig,
    UsageInfo,
)
from .base import BaseAgentAdapter
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class LiteLLMAdapter(BaseAgentAdapter):
    """
    Adapter that reaches any litellm-supported backend.

    Request shaping per vendor is litellm's job; this class only maps its
    errors onto the chorus taxonomy and retries transient failures.

    Example:
        adapter = LiteLLMAdapter("anthropic/claude-3-5-haiku-latest", provider_key="anthropic")
        await adapter.initialize()
        response = await adapter.generate_response([{"role": "user", "content": "Hi"}])

        # Offline, e.g. in tests
        adapter = LiteLLMAdapter("openai/gpt-4o-mini", mock_response="Hello!")
    """

    def __init__(
        self,
        model: str,
        provider_key: str | None = None,
        name: str | None = None,
        api_key: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        retry: RetryConfig | None = None,
        **extra_kwargs: Any,
    ):
        super().__init__(model=model, name=name)
        self.provider_key = (provider_key or model.split("/", 1)[0]).lower()
        self._api_key = api_key
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._retry = RetryPolicy(retry)
        self._extra_kwargs = extra_kwargs

    @classmethod
    def from_config(
        cls,
        config: ParticipantConfig,
        retry: RetryConfig | None = None,
    ) -> "LiteLLMAdapter":
        """Build an adapter from a participant config; ``options`` become constructor kwargs."""
        options = dict(config.options)
        options.setdefault("retry", retry)
        model = options.pop("model", None) or config.model_key
        if "/" not in model:
            model = f"{config.provider_key}/{model}"
        return cls(
            model=model,
            provider_key=config.provider_key,
            name=options.pop("name", None) or config.display_name,
            **options,
        )

    async def _initialize(self, options: dict[str, Any]) -> None:
        self._extra_kwargs.update(options)
        if "mock_response" in self._extra_kwargs:
            logger.debug("%s will return mock responses", self.name)
            return
        if self._api_key:
            return
        env_var = PROVIDER_API_KEYS.get(self.provider_key)
        if env_var and not os.getenv(env_var):
            raise ConfigurationError(
                f"Missing API key for {self.name}: set {env_var}"
            )

    def _build_kwargs(self, messages: list[Message]) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"model": self.model, "messages": messages}
        if self._api_key is not None:
            kwargs["api_key"] = self._api_key
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature
        if self._max_tokens is not None:
            kwargs["max_tokens"] = self._max_tokens
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        kwargs.update(self._extra_kwargs)
        return kwargs

    async def _generate(
        self,
        messages: list[Message],
        context: dict[str, Any],
    ) -> AgentResponse:
        kwargs = self._build_kwargs(messages)
        return await self._retry.call(lambda: self._complete(kwargs), label=self.model)

    async def _complete(self, kwargs: dict[str, Any]) -> AgentResponse:
        try:
            response = await litellm.acompletion(**kwargs)
        except litellm.exceptions.AuthenticationError as e:
            raise ConfigurationError(f"Authentication failed for {self.model}: {e}") from e
        except litellm.exceptions.NotFoundError as e:
            raise ConfigurationError(f"Unknown model {self.model}: {e}") from e
        except litellm.exceptions.RateLimitError as e:
            raise NetworkError(f"Rate limit exceeded: {e}", status_code=429) from e
        except (
            litellm.exceptions.APIConnectionError,
            litellm.exceptions.Timeout,
            litellm.exceptions.ServiceUnavailableError,
            litellm.exceptions.InternalServerError,
        ) as e:
            raise NetworkError(
                f"Transient error from {self.model}: {e}",
                status_code=getattr(e, "status_code", None),
            ) from e
        except litellm.exceptions.APIError as e:
            status = getattr(e, "status_code", None)
            if status is not None and status >= 500:
                raise NetworkError(f"API error: {e}", status_code=status) from e
            raise AIServiceError(f"API error: {e}", status_code=status, response=e) from e
        except Exception as e:
            raise AIServiceError(f"Completion failed: {e}", response=e) from e

        content = ""
        finish_reason = None
        if response.choices:
            choice = response.choices[0]
            if choice.message and choice.message.content:
                content = choice.message.content
            finish_reason = getattr(choice, "finish_reason", None)

        usage = UsageInfo.from_litellm(
            response.usage.model_dump() if getattr(response, "usage", None) else None
        )

        return AgentResponse(
            content=content,
            model=response.model or self.model,
            finish_reason=finish_reason,
            usage=usage,
            raw_response=response,
        )

    async def _health_check(self) -> bool:
        return self.initialized and bool(self.model)
