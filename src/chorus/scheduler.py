"""Turn scheduler: delayed, cancellable, concurrency-bounded response tasks."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import OrchestratorConfig
    from .context import ContextMessage
    from .strategy import InteractionStrategy

logger = logging.getLogger(__name__)


class TaskState(StrEnum):
    """Lifecycle of a scheduled task.

    PENDING -> FIRED -> COMPLETED, or PENDING/FIRED -> CANCELLED.
    """

    PENDING = "pending"
    FIRED = "fired"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CancellationToken:
    """Flag shared between a scheduled task and the adapter call it drives."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class ScheduledTask:
    """A pending or in-flight response for one participant."""

    agent_id: str
    round_id: int
    delay_ms: float
    scheduled_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    strategy: "InteractionStrategy | None" = None
    context_snapshot: tuple["ContextMessage", ...] = ()
    is_user_response: bool = True
    state: TaskState = TaskState.PENDING
    token: CancellationToken = field(default_factory=CancellationToken)
    failed: bool = False
    error: BaseException | None = None
    _handle: asyncio.TimerHandle | None = field(default=None, repr=False)
    _task: "asyncio.Task[None] | None" = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.state in (TaskState.COMPLETED, TaskState.CANCELLED)

    def cancel(self) -> bool:
        """
        Stop the timer and abandon any in-flight call.

        Returns:
            True if the task was still outstanding
        """
        if self.done:
            return False
        self.token.cancel()
        if self._handle is not None:
            self._handle.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.state = TaskState.CANCELLED
        return True


DispatchFn = Callable[[ScheduledTask], Awaitable[None]]


class TurnScheduler:
    """
    Turns strategy decisions into delayed response tasks.

    At most one task is outstanding per participant; scheduling again
    cancels the previous one. Fired tasks share a semaphore so only
    ``max_concurrent`` dispatches run at once. There are no retries here.

    Example:
        scheduler = TurnScheduler(dispatch, min_delay_ms=1000, max_delay_ms=3000)
        task = scheduler.schedule("openai_gpt-4o", round_id=3)
        scheduler.cancel("openai_gpt-4o")
    """

    def __init__(
        self,
        dispatch: DispatchFn,
        min_delay_ms: float = 30_000,
        max_delay_ms: float = 90_000,
        max_concurrent: int = 2,
        rng: random.Random | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            dispatch: Coroutine function run when a task fires
            min_delay_ms: Lower bound of the default delay range
            max_delay_ms: Upper bound of the default delay range
            max_concurrent: Maximum number of dispatches running at once
            rng: Random source for delays
        """
        self._dispatch = dispatch
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self.max_concurrent = max_concurrent
        self._rng = rng or random.Random()
        self._tasks: dict[str, ScheduledTask] = {}
        self._running: set[asyncio.Task[None]] = set()
        self._semaphore: asyncio.Semaphore | None = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
        return self._semaphore

    def draw_delay(self) -> float:
        """Uniform draw from the configured delay range, in milliseconds."""
        return self._rng.uniform(self.min_delay_ms, self.max_delay_ms)

    def schedule(
        self,
        agent_id: str,
        round_id: int = 0,
        delay_ms: float | None = None,
        strategy: "InteractionStrategy | None" = None,
        context_snapshot: Sequence["ContextMessage"] = (),
        is_user_response: bool = True,
    ) -> ScheduledTask:
        """
        Schedule a response for a participant.

        Must be called from a running event loop.

        Args:
            agent_id: Participant to respond
            round_id: Round the decision was derived from
            delay_ms: Explicit delay; drawn from the default range if None
            strategy: Decision to carry to dispatch
            context_snapshot: Messages the response should be built from
            is_user_response: Whether the round was triggered by a user

        Returns:
            The new ScheduledTask
        """
        loop = asyncio.get_running_loop()

        previous = self._tasks.get(agent_id)
        if previous is not None and not previous.done:
            previous.cancel()
            logger.debug("Replaced outstanding task for %s", agent_id)

        delay = self.draw_delay() if delay_ms is None else max(0.0, delay_ms)
        task = ScheduledTask(
            agent_id=agent_id,
            round_id=round_id,
            delay_ms=delay,
            strategy=strategy,
            context_snapshot=tuple(context_snapshot),
            is_user_response=is_user_response,
        )
        task._handle = loop.call_later(delay / 1000, self._fire, task)
        self._tasks[agent_id] = task
        logger.debug("Scheduled %s in %.0fms (round %d)", agent_id, delay, round_id)
        return task

    def _fire(self, task: ScheduledTask) -> None:
        if task.state != TaskState.PENDING:
            return
        task.state = TaskState.FIRED
        running = asyncio.get_running_loop().create_task(self._run(task))
        task._task = running
        self._running.add(running)
        running.add_done_callback(self._running.discard)

    async def _run(self, task: ScheduledTask) -> None:
        try:
            async with self._get_semaphore():
                if task.token.cancelled:
                    task.state = TaskState.CANCELLED
                    return
                await self._dispatch(task)
            if task.state == TaskState.FIRED:
                task.state = TaskState.COMPLETED
        except asyncio.CancelledError:
            task.state = TaskState.CANCELLED
            raise
        except Exception as e:
            task.failed = True
            task.error = e
            task.state = TaskState.COMPLETED
            logger.exception("Dispatch for %s raised unexpectedly", task.agent_id)
        finally:
            if self._tasks.get(task.agent_id) is task:
                del self._tasks[task.agent_id]

    def cancel(self, agent_id: str) -> bool:
        """Cancel the outstanding task for a participant, if any."""
        task = self._tasks.pop(agent_id, None)
        if task is None:
            return False
        return task.cancel()

    def cancel_all(self) -> int:
        """Cancel every outstanding task. Returns how many were cancelled."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        return sum(1 for task in tasks if task.cancel())

    def cancel_stale(self, round_id: int) -> int:
        """Cancel pending tasks derived from rounds older than ``round_id``; in-flight ones finish."""
        stale = [
            t for t in self._tasks.values()
            if t.state == TaskState.PENDING and t.round_id < round_id
        ]
        for task in stale:
            self.cancel(task.agent_id)
        return len(stale)

    def get(self, agent_id: str) -> ScheduledTask | None:
        return self._tasks.get(agent_id)

    @property
    def pending(self) -> list[ScheduledTask]:
        return [t for t in self._tasks.values() if t.state == TaskState.PENDING]

    @property
    def in_flight(self) -> list[ScheduledTask]:
        return [t for t in self._tasks.values() if t.state == TaskState.FIRED]

    def status(self) -> dict[str, Any]:
        return {
            "pending": len(self.pending),
            "in_flight": len(self.in_flight),
            "max_concurrent": self.max_concurrent,
            "agents": sorted(self._tasks),
        }

    async def wait_idle(self, poll_interval: float = 0.005) -> None:
        """Wait until no task is pending or running (including tasks scheduled meanwhile)."""
        while self._tasks or self._running:
            if self._running:
                await asyncio.wait(set(self._running))
            else:
                await asyncio.sleep(poll_interval)


def calculate_response_delay(
    index: int,
    config: "OrchestratorConfig",
    is_user_response: bool = True,
    is_mentioned: bool = False,
    typing_count: int = 0,
    rng: random.Random | None = None,
) -> int:
    """
    Human-like pacing for the ``index``-th responder of a round, in milliseconds.

    The first responder to a user gets a short snappy delay. Others get a
    base delay (shortened when mentioned), a stagger by position, a small
    catch-up term and extra time for every participant already typing.
    """
    rng = rng or random.Random()

    if index == 0 and is_user_response:
        return int(rng.uniform(config.min_first_responder_delay, config.max_first_responder_delay))

    if is_user_response:
        base = rng.uniform(config.min_user_response_delay, config.max_user_response_delay)
    else:
        base = rng.uniform(config.min_background_delay, config.max_background_delay)

    if is_mentioned:
        base = max(config.min_mentioned_delay, base * config.mentioned_delay_multiplier)

    randomness = rng.random()
    stagger = index * config.min_delay_between_ai + randomness * (
        config.max_delay_between_ai - config.min_delay_between_ai
    )
    catch_up = randomness**2 * config.catch_up_multiplier

    typing = 0.0
    if typing_count > 0:
        typing = typing_count * config.typing_awareness_delay * (0.8 + rng.random() * 0.4)
        if not is_mentioned:
            base *= min(1 + typing_count * 0.5, config.typing_awareness_max_multiplier)

    return int(base + stagger + catch_up + typing)
