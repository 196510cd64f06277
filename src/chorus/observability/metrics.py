"""Per-participant response metrics."""

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class ParticipantMetrics:
    """Accumulated metrics for one participant."""

    responses: int = 0
    failures: int = 0
    total_latency_ms: float = 0.0
    total_tokens: int = 0
    failures_by_type: dict[str, int] = field(default_factory=dict)
    last_error: str | None = None

    @property
    def average_latency_ms(self) -> float:
        return self.total_latency_ms / self.responses if self.responses else 0.0


class MetricsTracker:
    """
    Tracks successes, failures and latency per participant.

    Repeated failures are only counted here; nothing deactivates a
    participant automatically.

    Example:
        metrics = MetricsTracker()
        metrics.track_response("openai_gpt-4o", latency_ms=812.0, tokens=120)
        metrics.track_failure("anthropic_claude", NetworkError("reset"))
        report = metrics.get_report()
    """

    def __init__(self) -> None:
        self._by_participant: dict[str, ParticipantMetrics] = {}

    def _get(self, participant_id: str) -> ParticipantMetrics:
        if participant_id not in self._by_participant:
            self._by_participant[participant_id] = ParticipantMetrics()
        return self._by_participant[participant_id]

    def track_response(self, participant_id: str, latency_ms: float, tokens: int = 0) -> None:
        stats = self._get(participant_id)
        stats.responses += 1
        stats.total_latency_ms += latency_ms
        stats.total_tokens += tokens

    def track_failure(self, participant_id: str, error: BaseException) -> None:
        stats = self._get(participant_id)
        stats.failures += 1
        error_type = type(error).__name__
        stats.failures_by_type[error_type] = stats.failures_by_type.get(error_type, 0) + 1
        stats.last_error = str(error)
        if stats.failures > 1 and stats.failures % 5 == 0:
            logger.warning(f"{participant_id} has failed {stats.failures} times")

    def for_participant(self, participant_id: str) -> ParticipantMetrics:
        return self._get(participant_id)

    @property
    def total_responses(self) -> int:
        return sum(m.responses for m in self._by_participant.values())

    @property
    def total_failures(self) -> int:
        return sum(m.failures for m in self._by_participant.values())

    def get_report(self) -> dict[str, Any]:
        """
        Get a metrics report.

        Returns:
            Dictionary with totals and a per-participant breakdown
        """
        return {
            "total_responses": self.total_responses,
            "total_failures": self.total_failures,
            "by_participant": {
                pid: {
                    "responses": m.responses,
                    "failures": m.failures,
                    "failures_by_type": dict(m.failures_by_type),
                    "average_latency_ms": m.average_latency_ms,
                    "total_tokens": m.total_tokens,
                    "last_error": m.last_error,
                }
                for pid, m in self._by_participant.items()
            },
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self._by_participant = {}
