"""Structured JSONL logging for conversation events."""

import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TextIO

from .callbacks import ErrorEvent, ResponseEvent

REDACTED = "[REDACTED]"
TRUNCATION_SUFFIX = "... [truncated]"


class StructuredLogger:
    """
    Writes room events as JSON lines to a file, stdout, or both.

    Responses are recorded at INFO, round plans at DEBUG, failures always.

    Example:
        logger = StructuredLogger(
            log_file="./logs/room.jsonl",
            max_content_length=500,
            redact_patterns=[os.environ["OPENAI_API_KEY"]],
        )
        logger.log_response(event)
        logger.close()
    """

    def __init__(
        self,
        log_file: str | Path | None = None,
        log_level: str = "INFO",
        include_content: bool = True,
        max_content_length: int | None = None,
        redact_patterns: list[str] | None = None,
        stdout: bool = False,
    ):
        """
        Args:
            log_file: JSONL destination, appended to; None writes no file
            log_level: Minimum level; "ERROR" records only failures
            include_content: Record message text, or an empty string when False
            max_content_length: Clip recorded text to this many characters
            redact_patterns: Literal strings (API keys and the like) to mask
            stdout: Echo each line to stdout as well
        """
        self._threshold = getattr(logging, log_level.upper())
        self._include_content = include_content
        self._limit = max_content_length
        self._secrets = [p for p in (redact_patterns or []) if p]
        self._echo = stdout
        self._handle: TextIO | None = None

        if log_file:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = path.open("a", encoding="utf-8")

    def _enabled(self, level: int) -> bool:
        return level >= self._threshold

    def _scrub(self, text: str, clip: bool = True) -> str:
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        if clip and self._limit and len(text) > self._limit:
            text = text[: self._limit] + TRUNCATION_SUFFIX
        return text

    def _record(self, kind: str, **fields: Any) -> None:
        line = json.dumps(
            {"type": kind, "timestamp": datetime.now(UTC).isoformat(), **fields},
            default=str,
        )
        if self._handle is not None:
            self._handle.write(f"{line}\n")
            self._handle.flush()
        if self._echo:
            print(line, file=sys.stdout)

    def log_response(self, event: ResponseEvent) -> None:
        """Log an appended response."""
        if not self._enabled(logging.INFO):
            return
        message = event.message
        self._record(
            "response",
            round_id=event.round_id,
            participant_id=event.participant_id,
            display_name=event.display_name,
            message_id=message.id,
            strategy=event.strategy_type,
            is_user_response=event.is_user_response,
            mentions=list(message.mentions),
            content=self._scrub(message.content) if self._include_content else "",
            response_time_ms=event.response_time_ms,
        )

    def log_error(self, event: ErrorEvent) -> None:
        """Log a participant failure."""
        self._record(
            "error",
            round_id=event.round_id,
            participant_id=event.participant_id,
            display_name=event.display_name,
            error=self._scrub(str(event.error), clip=False),
            error_type=type(event.error).__name__,
            response_time_ms=event.response_time_ms,
        )

    def log_round(
        self,
        round_id: int,
        trigger_id: str | None,
        responders: list[str],
    ) -> None:
        """Log the participants scheduled for a round."""
        if not self._enabled(logging.DEBUG):
            return
        self._record(
            "round",
            round_id=round_id,
            trigger_message_id=trigger_id,
            responders=responders,
        )

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
