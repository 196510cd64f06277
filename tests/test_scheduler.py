"""Tests for the turn scheduler."""

import asyncio
import random

import pytest

from chorus.config import OrchestratorConfig
from chorus.scheduler import ScheduledTask, TaskState, TurnScheduler, calculate_response_delay


class Recorder:
    """Dispatch function that records tasks and optionally blocks."""

    def __init__(self, delay: float = 0.0, error: Exception | None = None):
        self.delay = delay
        self.error = error
        self.dispatched: list[ScheduledTask] = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, task: ScheduledTask) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            self.dispatched.append(task)
        finally:
            self.active -= 1


class TestScheduling:
    """Tests for scheduling and firing."""

    @pytest.mark.asyncio
    async def test_fires_and_completes(self):
        """A scheduled task should dispatch once and complete."""
        recorder = Recorder()
        scheduler = TurnScheduler(recorder)
        task = scheduler.schedule("claude", round_id=1, delay_ms=5)
        assert task.state == TaskState.PENDING
        await scheduler.wait_idle()
        assert recorder.dispatched == [task]
        assert task.state == TaskState.COMPLETED
        assert scheduler.get("claude") is None

    @pytest.mark.asyncio
    async def test_default_delay_drawn_from_range(self):
        """Test that omitted delays come from the configured range."""
        scheduler = TurnScheduler(Recorder(), min_delay_ms=10, max_delay_ms=20)
        task = scheduler.schedule("claude")
        assert 10 <= task.delay_ms <= 20
        scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_huge_delay_never_fires(self):
        """A task with an enormous delay should not dispatch while we wait."""
        recorder = Recorder()
        scheduler = TurnScheduler(recorder, min_delay_ms=1_000_000, max_delay_ms=1_000_000)
        task = scheduler.schedule("claude")
        await asyncio.sleep(0.05)
        assert recorder.dispatched == []
        assert task.state == TaskState.PENDING
        scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_reschedule_replaces_outstanding(self):
        """Scheduling the same participant again cancels the earlier task."""
        recorder = Recorder()
        scheduler = TurnScheduler(recorder)
        first = scheduler.schedule("claude", delay_ms=1_000)
        second = scheduler.schedule("claude", delay_ms=5)
        assert first.state == TaskState.CANCELLED
        assert first.token.cancelled
        await scheduler.wait_idle()
        assert recorder.dispatched == [second]

    @pytest.mark.asyncio
    async def test_dispatch_error_recorded(self):
        """Test that a failing dispatch marks the task failed without raising."""
        scheduler = TurnScheduler(Recorder(error=RuntimeError("boom")))
        task = scheduler.schedule("claude", delay_ms=0)
        await scheduler.wait_idle()
        assert task.failed
        assert isinstance(task.error, RuntimeError)
        assert task.state == TaskState.COMPLETED


class TestCancellation:
    """Tests for cancelling tasks."""

    @pytest.mark.asyncio
    async def test_cancel_before_fire(self):
        """A cancelled pending task never dispatches."""
        recorder = Recorder()
        scheduler = TurnScheduler(recorder)
        task = scheduler.schedule("claude", delay_ms=20)
        assert scheduler.cancel("claude")
        await asyncio.sleep(0.05)
        assert recorder.dispatched == []
        assert task.state == TaskState.CANCELLED
        assert not scheduler.cancel("claude")

    @pytest.mark.asyncio
    async def test_cancel_in_flight_sets_token(self):
        """Cancelling a running task flips its token and stops the dispatch."""
        recorder = Recorder(delay=1.0)
        scheduler = TurnScheduler(recorder)
        task = scheduler.schedule("claude", delay_ms=0)
        await asyncio.sleep(0.02)
        assert task.state == TaskState.FIRED
        assert scheduler.in_flight == [task]

        assert task.cancel()
        await asyncio.sleep(0.01)
        assert task.token.cancelled
        assert task.state == TaskState.CANCELLED
        assert recorder.dispatched == []

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        """Test cancelling everything returns the count."""
        scheduler = TurnScheduler(Recorder())
        for agent in ["claude", "gpt", "gemini"]:
            scheduler.schedule(agent, delay_ms=1_000)
        assert scheduler.cancel_all() == 3
        assert scheduler.pending == []

    @pytest.mark.asyncio
    async def test_cancel_stale(self):
        """Only pending tasks from older rounds are cancelled."""
        scheduler = TurnScheduler(Recorder())
        old = scheduler.schedule("claude", round_id=1, delay_ms=1_000)
        new = scheduler.schedule("gpt", round_id=2, delay_ms=1_000)
        assert scheduler.cancel_stale(2) == 1
        assert old.state == TaskState.CANCELLED
        assert new.state == TaskState.PENDING
        scheduler.cancel_all()


class TestConcurrency:
    """Tests for the concurrency bound."""

    @pytest.mark.asyncio
    async def test_max_concurrent(self):
        """No more than max_concurrent dispatches run at once."""
        recorder = Recorder(delay=0.02)
        scheduler = TurnScheduler(recorder, max_concurrent=1)
        for agent in ["claude", "gpt", "gemini"]:
            scheduler.schedule(agent, delay_ms=0)
        await scheduler.wait_idle()
        assert len(recorder.dispatched) == 3
        assert recorder.max_active == 1

    @pytest.mark.asyncio
    async def test_status(self):
        """Test the status snapshot."""
        scheduler = TurnScheduler(Recorder(), max_concurrent=2)
        scheduler.schedule("gpt", delay_ms=1_000)
        scheduler.schedule("claude", delay_ms=1_000)
        status = scheduler.status()
        assert status == {
            "pending": 2,
            "in_flight": 0,
            "max_concurrent": 2,
            "agents": ["claude", "gpt"],
        }
        scheduler.cancel_all()


class TestCalculateResponseDelay:
    """Tests for natural pacing."""

    def test_first_responder_to_user(self):
        """The first responder to a user is quick."""
        config = OrchestratorConfig()
        for seed in range(20):
            delay = calculate_response_delay(0, config, rng=random.Random(seed))
            assert 2_500 <= delay <= 4_500

    def test_later_responder_range(self):
        """Test the range for a later, unmentioned responder."""
        config = OrchestratorConfig()
        for seed in range(20):
            delay = calculate_response_delay(1, config, rng=random.Random(seed))
            assert 10_000 <= delay <= 41_500

    def test_mentioned_is_faster(self):
        """Test that mentioned responders get a shortened base delay."""
        config = OrchestratorConfig()
        for seed in range(20):
            delay = calculate_response_delay(1, config, is_mentioned=True, rng=random.Random(seed))
            assert 7_400 <= delay <= 27_200

    def test_typing_adds_delay(self):
        """Test that participants already typing push the delay out."""
        config = OrchestratorConfig()
        for seed in range(20):
            idle = calculate_response_delay(1, config, rng=random.Random(seed))
            busy = calculate_response_delay(1, config, typing_count=2, rng=random.Random(seed))
            assert busy > idle
