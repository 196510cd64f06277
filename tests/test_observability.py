"""Tests for observability functionality."""

import json
import logging
from pathlib import Path

import pytest

from chorus.context import ContextStore, IncomingMessage
from chorus.observability import (
    CallbackManager,
    ErrorEvent,
    MetricsTracker,
    ResponseEvent,
    StatusEvent,
    StructuredLogger,
    create_logging_callbacks,
)
from chorus.types import NetworkError


# Fixtures
@pytest.fixture
def response_event() -> ResponseEvent:
    """Create a sample response event."""
    record = ContextStore().append(
        IncomingMessage(
            content="@Bob I think sk-secret-123 should never be logged.",
            sender="Claude",
            sender_type="ai",
            alias="claude",
            ai_id="anthropic_claude",
        )
    )
    return ResponseEvent(
        participant_id="anthropic_claude",
        display_name="Claude",
        message=record,
        round_id=3,
        strategy_type="direct",
        response_time_ms=812.0,
    )


@pytest.fixture
def error_event() -> ErrorEvent:
    """Create a sample error event."""
    return ErrorEvent(
        participant_id="openai_gpt",
        display_name="GPT",
        error=NetworkError("connection reset"),
        round_id=3,
        response_time_ms=40.0,
    )


def read_entries(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines()]


# Callback Tests
class TestCallbackManager:
    """Tests for callback management."""

    @pytest.mark.asyncio
    async def test_sync_and_async_callbacks(self, response_event):
        """Should call both sync and async callbacks."""
        callbacks = CallbackManager()
        seen = []

        @callbacks.on_response
        def sync_callback(event):
            seen.append(("sync", event.round_id))

        @callbacks.on_response
        async def async_callback(event):
            seen.append(("async", event.round_id))

        await callbacks.emit_response(response_event)
        assert seen == [("sync", 3), ("async", 3)]

    @pytest.mark.asyncio
    async def test_error_and_status(self, error_event):
        """Test error and status callbacks."""
        callbacks = CallbackManager()
        errors, statuses = [], []
        callbacks.add_on_error(errors.append)
        callbacks.add_on_status(statuses.append)

        await callbacks.emit_error(error_event)
        await callbacks.emit_status(StatusEvent("sleeping", {"reason": "message-limit-reached"}))
        assert errors == [error_event]
        assert statuses[0].kind == "sleeping"

    @pytest.mark.asyncio
    async def test_logging_callbacks(self, response_event, error_event, caplog):
        """Test the standard logging callbacks."""
        logger = logging.getLogger("chorus.test")
        callbacks = create_logging_callbacks(logger, level="INFO")
        with caplog.at_level(logging.INFO, logger="chorus.test"):
            await callbacks.emit_response(response_event)
            await callbacks.emit_error(error_event)
        assert "[round 3] Claude (direct, 812ms)" in caplog.text
        assert "GPT failed" in caplog.text


# Metrics Tests
class TestMetricsTracker:
    """Tests for per-participant metrics."""

    def test_track_response(self):
        """Should accumulate responses and latency."""
        metrics = MetricsTracker()
        metrics.track_response("anthropic_claude", latency_ms=100.0, tokens=20)
        metrics.track_response("anthropic_claude", latency_ms=300.0, tokens=10)
        stats = metrics.for_participant("anthropic_claude")
        assert stats.responses == 2
        assert stats.average_latency_ms == 200.0
        assert stats.total_tokens == 30

    def test_track_failure(self):
        """Should count failures by type."""
        metrics = MetricsTracker()
        metrics.track_failure("openai_gpt", NetworkError("reset"))
        metrics.track_failure("openai_gpt", TimeoutError("slow"))
        report = metrics.get_report()
        assert report["total_failures"] == 2
        participant = report["by_participant"]["openai_gpt"]
        assert participant["failures_by_type"] == {"NetworkError": 1, "TimeoutError": 1}
        assert participant["last_error"] == "slow"

    def test_repeated_failures_warn(self, caplog):
        """Test that every fifth failure logs a warning."""
        metrics = MetricsTracker()
        with caplog.at_level(logging.WARNING, logger="chorus.observability.metrics"):
            for _ in range(5):
                metrics.track_failure("openai_gpt", NetworkError("reset"))
        assert "openai_gpt has failed 5 times" in caplog.text

    def test_reset(self):
        """Test resetting metrics."""
        metrics = MetricsTracker()
        metrics.track_response("anthropic_claude", latency_ms=1.0)
        metrics.reset()
        assert metrics.get_report() == {
            "total_responses": 0,
            "total_failures": 0,
            "by_participant": {},
        }


# Structured Logger Tests
class TestStructuredLogger:
    """Tests for JSONL logging."""

    def test_log_response(self, tmp_path, response_event):
        """Should write a response entry."""
        log_file = tmp_path / "logs" / "room.jsonl"
        logger = StructuredLogger(log_file=log_file)
        logger.log_response(response_event)
        logger.close()

        entry = read_entries(log_file)[0]
        assert entry["type"] == "response"
        assert entry["participant_id"] == "anthropic_claude"
        assert entry["round_id"] == 3
        assert entry["mentions"] == ["Bob"]

    def test_redaction_and_truncation(self, tmp_path, response_event):
        """Test that secrets are redacted and long content clipped."""
        log_file = tmp_path / "room.jsonl"
        logger = StructuredLogger(
            log_file=log_file, redact_patterns=["sk-secret-123"], max_content_length=30
        )
        logger.log_response(response_event)
        logger.close()

        content = read_entries(log_file)[0]["content"]
        assert "sk-secret-123" not in content
        assert content.endswith("... [truncated]")

    def test_exclude_content(self, tmp_path, response_event):
        """Test logging without message content."""
        log_file = tmp_path / "room.jsonl"
        logger = StructuredLogger(log_file=log_file, include_content=False)
        logger.log_response(response_event)
        logger.close()
        assert read_entries(log_file)[0]["content"] == ""

    def test_error_level_skips_responses(self, tmp_path, response_event, error_event):
        """Test that an ERROR level records only failures."""
        log_file = tmp_path / "room.jsonl"
        logger = StructuredLogger(log_file=log_file, log_level="ERROR")
        logger.log_response(response_event)
        logger.log_error(error_event)
        logger.log_round(3, "abc", ["openai_gpt"])
        logger.close()

        entries = read_entries(log_file)
        assert [e["type"] for e in entries] == ["error"]
        assert entries[0]["error_type"] == "NetworkError"

    def test_log_round_at_debug(self, tmp_path):
        """Test that round plans are logged at DEBUG."""
        log_file = tmp_path / "room.jsonl"
        logger = StructuredLogger(log_file=log_file, log_level="DEBUG")
        logger.log_round(1, "abc", ["openai_gpt", "anthropic_claude"])
        logger.close()

        entry = read_entries(log_file)[0]
        assert entry["type"] == "round"
        assert entry["responders"] == ["openai_gpt", "anthropic_claude"]

    def test_stdout(self, capsys, error_event):
        """Test logging to stdout."""
        logger = StructuredLogger(stdout=True)
        logger.log_error(error_event)
        assert json.loads(capsys.readouterr().out)["participant_id"] == "openai_gpt"
