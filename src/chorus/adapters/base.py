"""Agent adapter lifecycle contract."""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from ..types import AgentResponse, AIServiceError, ChorusError, ConfigurationError, Message

logger = logging.getLogger(__name__)

HEALTH_CHECK_TTL = 300.0


@runtime_checkable
class AgentAdapter(Protocol):
    """Lifecycle contract every AI backend binding satisfies.

    The orchestrator only ever talks to adapters through these methods.
    ``context`` may carry a ``cancel_token`` (see ``chorus.scheduler``);
    a result produced after the token is cancelled is discarded.
    """

    name: str
    model: str

    async def initialize(self, options: dict[str, Any] | None = None) -> None: ...

    async def generate_response(
        self,
        messages: Sequence[Message],
        context: dict[str, Any] | None = None,
    ) -> AgentResponse: ...

    async def health_check(self) -> bool: ...

    async def reset_connection(self) -> None: ...

    async def shutdown(self) -> None: ...


class BaseAgentAdapter(ABC):
    """
    Shared lifecycle handling for adapters.

    Subclasses implement ``_generate`` and may override ``_initialize``,
    ``_health_check``, ``_reset`` and ``_shutdown``. Successful health
    checks are cached for five minutes.
    """

    def __init__(
        self,
        model: str,
        name: str | None = None,
        health_check_on_init: bool = False,
        health_check_ttl: float = HEALTH_CHECK_TTL,
    ):
        self.model = model
        self.name = name or model
        self._health_check_on_init = health_check_on_init
        self._health_check_ttl = health_check_ttl
        self._initialized = False
        self._closed = False
        self._last_healthy: float | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self, options: dict[str, Any] | None = None) -> None:
        """
        Validate configuration and prepare the client.

        Raises:
            ConfigurationError: If the adapter cannot be used
        """
        if self._initialized:
            return
        try:
            await self._initialize(options or {})
        except ConfigurationError:
            raise
        except ChorusError as e:
            raise ConfigurationError(f"{self.name} failed to initialize: {e}") from e

        self._initialized = True
        self._closed = False

        if self._health_check_on_init and not await self.health_check():
            self._initialized = False
            raise ConfigurationError(f"{self.name} failed its initial health check")

    async def generate_response(
        self,
        messages: Sequence[Message],
        context: dict[str, Any] | None = None,
    ) -> AgentResponse:
        """
        Generate a reply for the given messages.

        Raises:
            NetworkError: Transient failure (after adapter-level retries)
            AIServiceError: Not initialized, or an empty/malformed response
        """
        if not self._initialized:
            raise AIServiceError(f"{self.name} is not initialized")

        start = time.perf_counter()
        response = await self._generate(list(messages), context or {})
        if not response.content or not response.content.strip():
            raise AIServiceError(f"{self.name} returned an empty response", response=response)
        response.response_time_ms = (time.perf_counter() - start) * 1000
        return response

    async def health_check(self) -> bool:
        """Best-effort health check; failures are logged and reported as False."""
        if (
            self._last_healthy is not None
            and time.monotonic() - self._last_healthy < self._health_check_ttl
        ):
            return True
        try:
            healthy = await self._health_check()
        except ChorusError as e:
            logger.warning("Health check failed for %s: %s", self.name, e)
            healthy = False
        self._last_healthy = time.monotonic() if healthy else None
        return healthy

    async def reset_connection(self) -> None:
        """Re-establish client state without re-registering."""
        self._last_healthy = None
        await self._reset()

    async def shutdown(self) -> None:
        """Release resources. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._initialized = False
        self._last_healthy = None
        await self._shutdown()

    async def _initialize(self, options: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def _generate(
        self,
        messages: list[Message],
        context: dict[str, Any],
    ) -> AgentResponse:
        """Produce a response; called only when initialized."""
        ...

    async def _health_check(self) -> bool:
        return self._initialized

    async def _reset(self) -> None:
        pass

    async def _shutdown(self) -> None:
        pass
