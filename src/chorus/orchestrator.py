"""Conversation orchestrator: roster, intake, dispatch and shutdown."""

import asyncio
import logging
import random
import time
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from .adapters.registry import AdapterRegistry, default_registry
from .config import OrchestratorConfig
from .context import ContextMessage, ContextStore, IncomingMessage
from .mentions import MentionResolver, MentionTarget, to_mention_alias
from .observability.callbacks import CallbackManager, ErrorEvent, ResponseEvent, StatusEvent
from .observability.logging import StructuredLogger
from .observability.metrics import MetricsTracker
from .participants import Participant, ParticipantConfig, find_by_alias
from .postprocess import add_mention, limit_mentions, process_response, truncate_response
from .prompts import PromptBuilder, build_messages
from .scheduler import ScheduledTask, TurnScheduler, calculate_response_delay
from .strategy import InteractionStrategy, StrategyEngine, build_instruction
from .types import AdapterTimeoutError, AIServiceError, ChorusError, ConfigurationError, Message

logger = logging.getLogger(__name__)

TOPIC_CHANGE_HINT = (
    "Feel free to introduce a new interesting topic or shift the conversation "
    "in a different direction."
)


class ConversationOrchestrator:
    """
    Coordinates a room of AI participants.

    Messages enter through :meth:`on_message`, which appends them to the
    context store, evaluates the roster and schedules delayed responses.
    Each response runs as its own asyncio task; the adapter call is the
    only place it suspends. Finished responses re-enter through
    :meth:`on_message`, so the store has a single writer.

    How rounds work:
    - Every user message starts a new round and cancels pending tasks
      from older rounds; responses already in flight still complete
    - AI messages count towards ``max_ai_messages``; when reached, the
      room sleeps until the next user message
    - Mentions inside AI messages wake the mentioned participants
    - A background loop keeps the AIs chatting while the room is active

    Example:
        orchestrator = ConversationOrchestrator(OrchestratorConfig.from_env())

        @orchestrator.callbacks.on_response
        async def broadcast(event):
            print(f"{event.display_name}: {event.message.content}")

        await orchestrator.initialize_ais([
            ParticipantConfig(provider_key="openai", model_key="gpt-4o-mini", alias="gpt"),
            ParticipantConfig(provider_key="anthropic", model_key="claude-3-5-haiku-latest",
                              alias="claude"),
        ])
        orchestrator.on_message(IncomingMessage(content="@claude hi!", sender="Bob"))
        ...
        await orchestrator.cleanup()
    """

    def __init__(
        self,
        config: OrchestratorConfig | None = None,
        registry: AdapterRegistry | None = None,
        callbacks: CallbackManager | None = None,
        structured_logger: StructuredLogger | None = None,
        metrics: MetricsTracker | None = None,
        rng: random.Random | None = None,
        prompt_builder: PromptBuilder | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Orchestrator configuration (defaults if None)
            registry: Provider key -> adapter factory mapping (litellm-backed if None)
            callbacks: Event callbacks; the outbound response stream
            structured_logger: Optional JSONL logger for responses and errors
            metrics: Per-participant metrics tracker
            rng: Random source shared by strategy, scheduling and post-processing
            prompt_builder: Template-based system prompt builder
        """
        self.config = config or OrchestratorConfig()
        logging.basicConfig(level=getattr(logging, self.config.log_level.upper()))
        self.registry = registry if registry is not None else default_registry(retry=self.config.retry)
        self.callbacks = callbacks or CallbackManager()
        self.metrics = metrics or MetricsTracker()
        self._structured_logger = structured_logger
        self._rng = rng or random.Random()
        self._prompts = prompt_builder or PromptBuilder()

        self._resolver = MentionResolver()
        self._context = ContextStore(self.config.max_messages, resolver=self._resolver)
        self._engine = StrategyEngine(
            rng=self._rng,
            mention_window=self.config.mention_window,
            random_mention_probability=self.config.random_mention_probability,
            mention_budget=self.config.max_unique_mentions,
        )
        self._scheduler = TurnScheduler(
            self._dispatch,
            min_delay_ms=self.config.min_background_delay,
            max_delay_ms=self.config.max_background_delay,
            max_concurrent=self.config.max_concurrent_responses,
            rng=self._rng,
        )

        self._participants: dict[str, Participant] = {}
        self._round_id = 0
        self._ai_message_count = 0
        self._asleep = False
        self._last_ai_message_at: float | None = None
        self._background_task: asyncio.Task[None] | None = None
        self._event_tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    # -- Roster ----------------------------------------------------------

    async def initialize_ais(
        self,
        configs: Iterable[ParticipantConfig | Mapping[str, Any]],
    ) -> list[Participant]:
        """
        Build, initialize and register participants.

        A config that fails validation, names an unknown provider, or whose
        adapter fails to initialize is logged and skipped; the rest of the
        roster is unaffected.

        Args:
            configs: Participant configs (models or plain dicts)

        Returns:
            The participants added to the roster
        """
        added: list[Participant] = []
        failed: list[str] = []

        for raw in configs:
            try:
                config = (
                    raw if isinstance(raw, ParticipantConfig)
                    else ParticipantConfig.model_validate(raw)
                )
            except ValidationError as e:
                logger.warning("Skipping invalid participant config %r: %s", raw, e)
                failed.append(str(raw))
                continue

            participant_id = config.participant_id
            if participant_id in self._participants:
                logger.warning("Participant %s is already registered, skipping", participant_id)
                continue

            try:
                adapter = self.registry.create(config)
                await adapter.initialize()
            except Exception as e:
                error = e if isinstance(e, ChorusError) else ConfigurationError(
                    f"Adapter for {participant_id} failed to initialize: {e}"
                )
                logger.warning("Failed to initialize %s: %s", participant_id, error)
                failed.append(participant_id)
                continue

            participant = Participant.from_config(
                config, adapter, name=getattr(adapter, "name", None)
            )
            self._participants[participant_id] = participant
            self._resolver.add(participant.alias)
            added.append(participant)
            logger.info(
                "Initialized %s %s as @%s", participant.emoji, participant.display_name, participant.alias
            )

        if failed:
            logger.warning("%d participant(s) failed to initialize: %s", len(failed), ", ".join(failed))

        if added and self.config.background_enabled:
            self.start_background_conversation()
        return added

    @property
    def participants(self) -> list[Participant]:
        return list(self._participants.values())

    @property
    def ai_services(self) -> dict[str, dict[str, Any]]:
        """Read-only roster snapshot keyed by participant id."""
        return {pid: p.snapshot() for pid, p in self._participants.items()}

    @property
    def active_ais(self) -> list[str]:
        return [pid for pid, p in self._participants.items() if p.is_active]

    @property
    def context(self) -> ContextStore:
        return self._context

    @property
    def scheduler(self) -> TurnScheduler:
        return self._scheduler

    @property
    def round_id(self) -> int:
        return self._round_id

    @property
    def is_asleep(self) -> bool:
        return self._asleep

    def get_participant(self, agent: Participant | str) -> Participant:
        """
        Resolve a participant by object, id or alias.

        Raises:
            ValueError: If no such participant is registered
        """
        if isinstance(agent, Participant):
            return agent
        if agent in self._participants:
            return self._participants[agent]
        participant = find_by_alias(self._participants.values(), agent)
        if participant is None:
            raise ValueError(f"Unknown participant: {agent}")
        return participant

    # -- Intake ----------------------------------------------------------

    def on_message(self, message: IncomingMessage) -> ContextMessage | None:
        """
        Single intake path for every message in the room.

        Must be called from the orchestrator's event loop; calls are
        appended in the order they are made.

        Args:
            message: The incoming message

        Returns:
            The stored record, or None if the message was internal or the
            orchestrator is shut down
        """
        if self._closed:
            logger.warning("Ignoring message from %s: orchestrator is shut down", message.sender)
            return None

        record = self._context.append(message)
        if record is None:
            return None

        if record.sender_type == "user":
            self._round_id += 1
            stale = self._scheduler.cancel_stale(self._round_id)
            if stale:
                logger.debug("Round %d superseded %d pending task(s)", self._round_id, stale)
            self.wake_up()
            if message.suppress_responses:
                logger.info("Suppressing AI responses for message %s", record.id)
            else:
                self.schedule_responses(is_user_response=True)
        elif record.sender_type == "ai":
            self._ai_message_count += 1
            self._last_ai_message_at = time.monotonic()
            if self._ai_message_count >= self.config.max_ai_messages:
                self.put_to_sleep()
            elif record.mentions_normalized and not message.suppress_responses:
                self.schedule_responses(is_user_response=False, allow_fallback=False)

        return record

    def schedule_responses(
        self,
        is_user_response: bool = True,
        allow_fallback: bool = True,
        immediate: bool = False,
    ) -> list[ScheduledTask]:
        """
        Evaluate the roster against the current context and schedule responders.

        Args:
            is_user_response: The round answers a user message
            allow_fallback: Allow spontaneous responders besides mentioned ones
            immediate: Only stagger responders instead of drawing a full delay

        Returns:
            The scheduled tasks
        """
        if self._asleep or not self._participants:
            return []

        snapshot = tuple(self._context.recent(self.config.ai_context_size))
        roster = list(self._participants.values())
        plan = self._engine.plan_round(roster, snapshot, is_user_response, allow_fallback)
        responders = [s for s in plan if s.should_respond]
        typing_count = sum(1 for p in roster if p.is_generating)

        tasks: list[ScheduledTask] = []
        for index, strategy in enumerate(responders):
            delay: float | None = None
            if immediate:
                delay = index * self.config.min_delay_between_ai + self._rng.random() * (
                    self.config.max_delay_between_ai - self.config.min_delay_between_ai
                )
            elif self.config.natural_pacing:
                delay = calculate_response_delay(
                    index,
                    self.config,
                    is_user_response=is_user_response,
                    is_mentioned=strategy.mentions_current_ai,
                    typing_count=typing_count,
                    rng=self._rng,
                )
            tasks.append(
                self._scheduler.schedule(
                    strategy.agent_id,
                    round_id=self._round_id,
                    delay_ms=delay,
                    strategy=strategy,
                    context_snapshot=snapshot,
                    is_user_response=is_user_response,
                )
            )

        if self._structured_logger and tasks:
            self._structured_logger.log_round(
                self._round_id,
                snapshot[-1].id if snapshot else None,
                [t.agent_id for t in tasks],
            )
        return tasks

    def change_topic(self, new_topic: str, changed_by: str = "System") -> ContextMessage | None:
        """Post a system message announcing a new topic."""
        record = self.on_message(
            IncomingMessage(
                content=f'Topic changed to: "{new_topic}" by {changed_by}',
                sender="System",
                sender_type="system",
            )
        )
        self._emit_status("topic-changed", new_topic=new_topic, changed_by=changed_by)
        return record

    # -- Sleep / wake ----------------------------------------------------

    def wake_up(self) -> None:
        """Reset the AI message counter; a user message always wakes the room."""
        was_asleep = self._asleep
        self._ai_message_count = 0
        self._asleep = False
        if was_asleep:
            logger.info("AIs awakened")
            self._emit_status("awakened")
        if self.config.background_enabled and self._participants:
            self.start_background_conversation()

    def put_to_sleep(self) -> None:
        """Stop AI responses until the next user message."""
        if self._asleep:
            return
        self._asleep = True
        logger.info("AIs sleeping after %d AI messages", self._ai_message_count)
        self._emit_status("sleeping", reason="message-limit-reached")

    # -- Background conversation -----------------------------------------

    def start_background_conversation(self) -> None:
        """Start the background loop if a loop is running and it is not already started."""
        if self._closed or (self._background_task and not self._background_task.done()):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._background_task = loop.create_task(self._background_loop())

    async def _background_loop(self) -> None:
        while not self._closed:
            if self._asleep or not self.active_ais:
                await asyncio.sleep(self.config.sleep_retry_interval)
                continue

            delay_ms = self._rng.uniform(
                self.config.min_background_delay, self.config.max_background_delay
            )
            await asyncio.sleep(delay_ms / 1000)

            if self._last_ai_message_at is None:
                continue
            if time.monotonic() - self._last_ai_message_at > self.config.silence_timeout:
                continue
            self.schedule_responses(is_user_response=False, immediate=True)

    # -- Dispatch --------------------------------------------------------

    async def _dispatch(self, task: ScheduledTask) -> None:
        """Run one scheduled response; adapter failures stop here."""
        participant = self._participants.get(task.agent_id)
        if participant is None or not participant.is_active or participant.adapter is None:
            return
        if task.round_id < self._round_id:
            logger.debug("Dropping stale task for %s (round %d)", task.agent_id, task.round_id)
            return
        if self._asleep or task.token.cancelled:
            return

        context = list(task.context_snapshot) or self._context.recent(self.config.ai_context_size)
        participant.is_generating = True
        self._emit_status("generating-start", participant_id=participant.id)
        start = time.perf_counter()
        try:
            strategy = task.strategy or self._engine.decide(
                participant, context, task.is_user_response, self.participants
            )
            messages = self._prepare_messages(participant, context, strategy, task.is_user_response)
            response = await asyncio.wait_for(
                participant.adapter.generate_response(
                    messages,
                    {"cancel_token": task.token, "round_id": task.round_id, "strategy": strategy},
                ),
                timeout=self.config.response_timeout,
            )
        except TimeoutError:
            error = AdapterTimeoutError(
                f"{participant.display_name} timed out after {self.config.response_timeout}s",
                timeout=self.config.response_timeout,
            )
            await self._record_failure(participant, task, error, start)
            return
        except Exception as e:
            error = e if isinstance(e, ChorusError) else AIServiceError(
                f"{participant.display_name} failed: {e}", response=e
            )
            await self._record_failure(participant, task, error, start)
            return
        finally:
            participant.is_generating = False

        elapsed_ms = (time.perf_counter() - start) * 1000
        self._emit_status("generating-stop", participant_id=participant.id)

        if task.token.cancelled or self._closed:
            logger.debug("Discarding late result from %s", participant.display_name)
            return

        content = process_response(
            response.content,
            strategy,
            rng=self._rng,
            max_sentences=self.config.max_sentences,
            max_chars=self.config.max_response_chars,
        )
        participant.last_message_time = datetime.now(UTC)
        record = self.on_message(
            IncomingMessage(
                content=content,
                sender=participant.display_name,
                sender_type="ai",
                display_name=participant.display_name,
                alias=participant.alias,
                ai_id=participant.id,
                model_key=participant.model_key,
            )
        )
        if record is None:
            return

        self.metrics.track_response(participant.id, elapsed_ms, response.total_tokens)
        event = ResponseEvent(
            participant_id=participant.id,
            display_name=participant.display_name,
            message=record,
            round_id=task.round_id,
            strategy_type=str(strategy.type),
            response_time_ms=elapsed_ms,
            is_user_response=task.is_user_response,
        )
        if self._structured_logger:
            self._structured_logger.log_response(event)
        await self.callbacks.emit_response(event)

    def _prepare_messages(
        self,
        participant: Participant,
        context: list[ContextMessage],
        strategy: InteractionStrategy,
        is_user_response: bool,
    ) -> list[Message]:
        system_prompt = self.create_enhanced_system_prompt(
            participant, context, is_user_response=is_user_response
        )
        instruction = build_instruction(strategy, context[-1] if context else None)
        if not is_user_response and self._rng.random() < self.config.topic_change_chance:
            instruction = f"{instruction} {TOPIC_CHANGE_HINT}" if instruction else TOPIC_CHANGE_HINT
        messages = build_messages(participant, system_prompt, context, instruction)

        if self.config.verbose_context_logging:
            logger.debug(
                "Context for %s (%d messages):\n%s",
                participant.display_name,
                len(messages),
                "\n".join(f"[{m['role']}] {m['content']}" for m in messages),
            )
        return messages

    async def _record_failure(
        self,
        participant: Participant,
        task: ScheduledTask,
        error: Exception,
        start: float,
    ) -> None:
        elapsed_ms = (time.perf_counter() - start) * 1000
        task.failed = True
        task.error = error
        logger.warning(
            "%s (%s) failed to respond in round %d: %s",
            participant.display_name,
            participant.id,
            task.round_id,
            error,
        )
        self.metrics.track_failure(participant.id, error)
        self._emit_status("generating-stop", participant_id=participant.id)
        event = ErrorEvent(
            participant_id=participant.id,
            display_name=participant.display_name,
            error=error,
            round_id=task.round_id,
            response_time_ms=elapsed_ms,
        )
        if self._structured_logger:
            self._structured_logger.log_error(event)
        await self.callbacks.emit_error(event)

    def _emit_status(self, kind: str, **detail: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        event_task = loop.create_task(self.callbacks.emit_status(StatusEvent(kind, detail)))
        self._event_tasks.add(event_task)
        event_task.add_done_callback(self._event_tasks.discard)

    # -- Public helpers --------------------------------------------------

    def determine_interaction_strategy(
        self,
        agent: Participant | str,
        context: Sequence[ContextMessage] | None = None,
        is_user_response: bool = True,
    ) -> InteractionStrategy:
        """Decide how one participant would respond to the given (or current) context."""
        participant = self.get_participant(agent)
        if context is None:
            context = self._context.recent(self.config.ai_context_size)
        return self._engine.decide(participant, context, is_user_response, self.participants)

    def add_mention_to_response(
        self,
        response: str,
        target: MentionTarget | str | None,
    ) -> str:
        """Address ``target`` in a response; bare strings are resolved against the roster."""
        if isinstance(target, str):
            known = find_by_alias(self._participants.values(), target)
            target = known.mention_token if known else MentionTarget(
                type="ai", alias=to_mention_alias(target.lstrip("@"))
            )
        return add_mention(response, target, rng=self._rng, max_unique=self.config.max_unique_mentions)

    def limit_mentions_in_response(self, response: str, max_unique: int | None = None) -> str:
        return limit_mentions(
            response, self.config.max_unique_mentions if max_unique is None else max_unique
        )

    def truncate_response(self, response: str) -> str:
        return truncate_response(
            response,
            max_sentences=self.config.max_sentences,
            max_chars=self.config.max_response_chars,
        )

    def create_enhanced_system_prompt(
        self,
        agent: Participant | str,
        context: Sequence[ContextMessage] | None = None,
        personas_enabled: bool | None = None,
        is_user_response: bool = True,
    ) -> str:
        """
        Build a participant's system prompt.

        Persona text is included only when personas are enabled (falling
        back to the config flag); otherwise it is absent entirely.
        """
        participant = self.get_participant(agent)
        if context is None:
            context = self._context.recent(self.config.ai_context_size)
        if personas_enabled is None:
            personas_enabled = self.config.personas_enabled
        others = [p.display_name for p in self._participants.values() if p.id != participant.id]
        return self._prompts.system_prompt(
            participant,
            context,
            others=others,
            personas_enabled=personas_enabled,
            is_user_response=is_user_response,
            summary_window=self.config.summary_window,
        )

    # -- Introspection ---------------------------------------------------

    def context_metrics(self) -> dict[str, Any]:
        return self._context.metrics()

    def status(self) -> dict[str, Any]:
        """Snapshot of orchestrator state for metrics collectors."""
        return {
            "ai_services": len(self._participants),
            "active_ais": len(self.active_ais),
            "round_id": self._round_id,
            "message_tracker": {
                "ai_message_count": self._ai_message_count,
                "max_ai_messages": self.config.max_ai_messages,
                "is_asleep": self._asleep,
            },
            "context_size": self._context.size(),
            "scheduler": self._scheduler.status(),
            "background_running": bool(
                self._background_task and not self._background_task.done()
            ),
            "closed": self._closed,
        }

    # -- Shutdown --------------------------------------------------------

    async def cleanup(self) -> None:
        """
        Cancel all scheduled work and shut down every adapter.

        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        cancelled = self._scheduler.cancel_all()
        if cancelled:
            logger.info("Cancelled %d scheduled response(s)", cancelled)

        if self._background_task is not None:
            self._background_task.cancel()
            try:
                await self._background_task
            except asyncio.CancelledError:
                pass
            self._background_task = None

        for event_task in list(self._event_tasks):
            event_task.cancel()

        for participant in self._participants.values():
            if participant.adapter is None:
                continue
            try:
                await participant.adapter.shutdown()
            except Exception as e:
                logger.warning("Error shutting down %s: %s", participant.id, e)

        self._participants.clear()
        self._resolver = MentionResolver()
        self._context.resolver = self._resolver
        self._context.clear()

    async def __aenter__(self) -> "ConversationOrchestrator":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.cleanup()
