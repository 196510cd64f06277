"""Shared types, protocols and exceptions for chorus."""

from dataclasses import dataclass
from typing import Any, Literal, TypedDict

# Type aliases for messages
Role = Literal["system", "user", "assistant"]
SenderType = Literal["user", "ai", "system"]


class MessageDict(TypedDict, total=False):
    """A chat message in the form handed to an agent adapter."""

    role: Role
    content: str
    name: str


Message = MessageDict | dict[str, Any]


@dataclass
class UsageInfo:
    """Token usage information."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_litellm(cls, usage: dict[str, Any] | None) -> "UsageInfo":
        """Create from litellm usage dict."""
        if not usage:
            return cls()
        return cls(
            input_tokens=usage.get("prompt_tokens", 0) or 0,
            output_tokens=usage.get("completion_tokens", 0) or 0,
            total_tokens=usage.get("total_tokens", 0) or 0,
        )


@dataclass
class AgentResponse:
    """A response produced by an agent adapter."""

    content: str
    model: str
    finish_reason: str | None = None
    usage: UsageInfo | None = None
    response_time_ms: float = 0.0
    raw_response: Any = None

    @property
    def total_tokens(self) -> int:
        """Get total token count."""
        return self.usage.total_tokens if self.usage else 0


@dataclass
class RetryConfig:
    """Configuration for retry behavior at the adapter boundary."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True


# Exceptions
class ChorusError(Exception):
    """Base exception for chorus errors."""

    pass


class ConfigurationError(ChorusError):
    """Missing or invalid configuration, credentials or model reference."""

    pass


class NetworkError(ChorusError):
    """Transient I/O failure talking to an AI backend."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AIServiceError(ChorusError):
    """Generic adapter-reported failure, e.g. an empty or malformed response."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class AdapterTimeoutError(AIServiceError):
    """An adapter call exceeded its time budget."""

    def __init__(self, message: str, timeout: float):
        super().__init__(message)
        self.timeout = timeout
