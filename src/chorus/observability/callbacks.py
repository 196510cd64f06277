"""Callback system for orchestrator events."""

import logging as stdlib_logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..context import ContextMessage


@dataclass
class ResponseEvent:
    """A participant's response was appended to the context."""

    participant_id: str
    display_name: str
    message: ContextMessage
    round_id: int
    strategy_type: str
    response_time_ms: float
    is_user_response: bool = True


@dataclass
class ErrorEvent:
    """A participant failed to produce a response."""

    participant_id: str
    display_name: str
    error: Exception
    round_id: int
    response_time_ms: float


@dataclass
class StatusEvent:
    """Room-level state change (sleep, wake, topic change, generating start/stop)."""

    kind: str
    detail: dict[str, Any] = field(default_factory=dict)


OnResponseCallback = Callable[[ResponseEvent], Awaitable[None] | None]
OnErrorCallback = Callable[[ErrorEvent], Awaitable[None] | None]
OnStatusCallback = Callable[[StatusEvent], Awaitable[None] | None]


@dataclass
class CallbackManager:
    """
    Fan-out for orchestrator events.

    Transports subscribe here to receive appended responses; callbacks may be
    plain functions or coroutines and run in registration order.

    Example:
        callbacks = CallbackManager()

        @callbacks.on_response
        async def broadcast(event):
            await socket.send(event.message.to_dict())

        callbacks.add_on_status(lambda event: print(event.kind))
    """

    _on_response: list[OnResponseCallback] = field(default_factory=list)
    _on_error: list[OnErrorCallback] = field(default_factory=list)
    _on_status: list[OnStatusCallback] = field(default_factory=list)

    def add_on_response(self, callback: OnResponseCallback) -> None:
        self._on_response.append(callback)

    def add_on_error(self, callback: OnErrorCallback) -> None:
        self._on_error.append(callback)

    def add_on_status(self, callback: OnStatusCallback) -> None:
        self._on_status.append(callback)

    def on_response(self, callback: OnResponseCallback) -> OnResponseCallback:
        """Register ``callback`` for appended responses; usable as a decorator."""
        self.add_on_response(callback)
        return callback

    def on_error(self, callback: OnErrorCallback) -> OnErrorCallback:
        """Register ``callback`` for participant failures; usable as a decorator."""
        self.add_on_error(callback)
        return callback

    def on_status(self, callback: OnStatusCallback) -> OnStatusCallback:
        """Register ``callback`` for room status changes; usable as a decorator."""
        self.add_on_status(callback)
        return callback

    @staticmethod
    async def _dispatch(callbacks: list[Callable[[Any], Any]], event: Any) -> None:
        for callback in callbacks:
            result = callback(event)
            if isinstance(result, Awaitable):
                await result

    async def emit_response(self, event: ResponseEvent) -> None:
        await self._dispatch(self._on_response, event)

    async def emit_error(self, event: ErrorEvent) -> None:
        await self._dispatch(self._on_error, event)

    async def emit_status(self, event: StatusEvent) -> None:
        await self._dispatch(self._on_status, event)


def create_logging_callbacks(
    logger: Any,
    level: str = "INFO",
) -> CallbackManager:
    """
    Build a CallbackManager that reports every event through ``logger``.

    Responses and status changes go out at ``level``; failures always at ERROR.
    """
    log_level = getattr(stdlib_logging, level.upper())
    callbacks = CallbackManager()

    @callbacks.on_response
    def log_response(event: ResponseEvent) -> None:
        logger.log(
            log_level,
            f"[round {event.round_id}] {event.display_name} ({event.strategy_type}, "
            f"{event.response_time_ms:.0f}ms): {event.message.content[:100]}",
        )

    @callbacks.on_error
    def log_error(event: ErrorEvent) -> None:
        logger.error(
            f"[round {event.round_id}] {event.display_name} failed after "
            f"{event.response_time_ms:.0f}ms: {event.error}",
        )

    @callbacks.on_status
    def log_status(event: StatusEvent) -> None:
        logger.log(log_level, f"Status: {event.kind} {event.detail}")

    return callbacks
