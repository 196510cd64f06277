"""Interaction strategy engine: who responds each round, and how."""

import logging
import math
import random
from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import StrEnum

from .context import ContextMessage
from .mentions import MentionTarget
from .participants import Participant, find_sender

logger = logging.getLogger(__name__)

RECENT_MESSAGES_FOR_STRATEGY = 8
POTENTIAL_MENTION_TARGETS = 3
MANY_AI_MESSAGES_THRESHOLD = 3


class StrategyType(StrEnum):
    """How a participant's reply relates to the conversation."""

    AGREE_EXPAND = "agree-expand"
    CHALLENGE = "challenge"
    REDIRECT = "redirect"
    QUESTION = "question"
    DIRECT = "direct"


BASE_WEIGHTS: dict[StrategyType, float] = {
    StrategyType.AGREE_EXPAND: 0.30,
    StrategyType.CHALLENGE: 0.25,
    StrategyType.REDIRECT: 0.15,
    StrategyType.QUESTION: 0.20,
    StrategyType.DIRECT: 0.10,
}


@dataclass
class InteractionStrategy:
    """
    Per-round decision for one participant.

    Attributes:
        agent_id: Participant the decision is for
        should_respond: Eligible to reply this round
        should_mention: Reply should address ``target``
        target: Who to address (the asker, or another AI)
        mention_budget: Max unique mentions post-processing keeps
        type: Reply style
        mentions_current_ai: The triggering message mentioned this participant
    """

    agent_id: str
    should_respond: bool = False
    should_mention: bool = False
    target: MentionTarget | None = None
    mention_budget: int = 2
    type: StrategyType = StrategyType.DIRECT
    mentions_current_ai: bool = False


def responder_bounds(active_count: int, is_user_response: bool) -> tuple[int, int]:
    """Min/max number of spontaneous responders for a round."""
    if is_user_response:
        return 1, max(1, math.ceil(active_count * 0.30))
    return 0, max(1, math.ceil(active_count * 0.25))


def _is_from(agent: Participant, message: ContextMessage) -> bool:
    if message.sender_type != "ai":
        return False
    if message.ai_id:
        return message.ai_id == agent.id
    return bool(agent.normalized_alias) and message.normalized_alias == agent.normalized_alias


class StrategyEngine:
    """
    Decides which participants act next and whom they address.

    Decisions never raise; odd inputs such as an empty context simply
    produce ``should_respond=False``.

    Example:
        engine = StrategyEngine(rng=random.Random(7))
        strategy = engine.decide(claude, store.recent(50), is_user_response=True)
        if strategy.should_respond:
            ...
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        mention_window: int = 1,
        random_mention_probability: float = 0.35,
        mention_budget: int = 2,
    ):
        self._rng = rng or random.Random()
        self.mention_window = max(1, mention_window)
        self.random_mention_probability = random_mention_probability
        self.mention_budget = mention_budget

    def _pick_type(
        self,
        last: ContextMessage,
        recent: Sequence[ContextMessage],
        is_user_response: bool,
    ) -> StrategyType:
        weights = dict(BASE_WEIGHTS)
        if last.sender_type == "ai" and not is_user_response:
            weights[StrategyType.CHALLENGE] += 0.20
            weights[StrategyType.AGREE_EXPAND] += 0.15
        ai_count = sum(1 for m in recent if m.sender_type == "ai")
        if ai_count >= MANY_AI_MESSAGES_THRESHOLD:
            weights[StrategyType.REDIRECT] += 0.10
            weights[StrategyType.QUESTION] += 0.10
        return self._rng.choices(list(weights), weights=list(weights.values()))[0]

    def _window_mentions_roster(
        self,
        context: Sequence[ContextMessage],
        roster: Sequence[Participant] | None,
    ) -> bool:
        window = context[-self.mention_window :]
        if roster is None:
            return any(m.mentions_normalized for m in window)
        keys = {p.normalized_alias for p in roster if p.normalized_alias}
        return any(key in keys for m in window for key in m.mentions_normalized)

    def _sender_target(
        self,
        message: ContextMessage,
        roster: Sequence[Participant] | None,
    ) -> MentionTarget | None:
        if message.sender_type == "user":
            alias = message.alias or message.display_name or message.sender
            alias = alias.strip().lstrip("@")
            if not alias:
                return None
            return MentionTarget(type="user", alias=alias, display_name=message.display_name or alias)
        source = find_sender(roster or (), message)
        if source is not None:
            return source.mention_token
        if message.alias:
            return MentionTarget(type="ai", alias=message.alias, display_name=message.display_name)
        return None

    def _random_target(
        self,
        agent: Participant,
        recent: Sequence[ContextMessage],
        roster: Sequence[Participant] | None,
    ) -> MentionTarget | None:
        candidates: list[MentionTarget] = []
        seen: set[str] = set()
        for message in reversed(recent):
            if len(candidates) >= POTENTIAL_MENTION_TARGETS:
                break
            if message.sender_type != "ai" or _is_from(agent, message):
                continue
            target = self._sender_target(message, roster)
            if target is None or target.alias.lower() in seen:
                continue
            seen.add(target.alias.lower())
            candidates.append(target)
        if candidates and self._rng.random() < self.random_mention_probability:
            return candidates[0]
        return None

    def decide(
        self,
        agent: Participant,
        context: Sequence[ContextMessage],
        is_user_response: bool = True,
        roster: Sequence[Participant] | None = None,
    ) -> InteractionStrategy:
        """
        Decide whether and how one participant responds.

        Args:
            agent: The participant being evaluated
            context: Recent messages, oldest first
            is_user_response: The round was triggered by a user message
            roster: Every participant, used to resolve AI senders and mentions

        Returns:
            InteractionStrategy for this participant
        """
        if not context:
            return InteractionStrategy(agent_id=agent.id, mention_budget=self.mention_budget)

        last = context[-1]
        recent = context[-RECENT_MESSAGES_FOR_STRATEGY:]
        from_self = _is_from(agent, last)
        mentioned = not from_self and last.mentions_alias(agent.alias)

        if mentioned:
            should_respond = True
            strategy_type = StrategyType.DIRECT
        else:
            should_respond = not from_self and not self._window_mentions_roster(context, roster)
            strategy_type = self._pick_type(last, recent, is_user_response)

        target: MentionTarget | None = None
        if is_user_response and last.sender_type == "user":
            target = self._sender_target(last, roster)
        elif mentioned:
            target = self._sender_target(last, roster)
        elif should_respond:
            target = self._random_target(agent, recent, roster)

        return InteractionStrategy(
            agent_id=agent.id,
            should_respond=should_respond,
            should_mention=target is not None,
            target=target,
            mention_budget=self.mention_budget,
            type=strategy_type,
            mentions_current_ai=mentioned,
        )

    def plan_round(
        self,
        roster: Sequence[Participant],
        context: Sequence[ContextMessage],
        is_user_response: bool = True,
        allow_fallback: bool = True,
    ) -> list[InteractionStrategy]:
        """
        Evaluate every eligible participant for one round.

        All mentioned participants respond. Spontaneous responders are a
        random subset of the fallback candidates, sized by
        :func:`responder_bounds`. Participants that are inactive or already
        generating are not evaluated.

        Returns:
            One strategy per eligible participant; responders come first
        """
        eligible = [p for p in roster if p.is_active and not p.is_generating]
        if not eligible or not context:
            return []

        decisions = [self.decide(p, context, is_user_response, roster) for p in eligible]
        mentioned = [d for d in decisions if d.should_respond and d.mentions_current_ai]
        candidates = [d for d in decisions if d.should_respond and not d.mentions_current_ai]

        selected: list[InteractionStrategy] = []
        if allow_fallback and candidates:
            low, high = responder_bounds(len(eligible), is_user_response)
            low = max(low - len(mentioned), 0)
            high = max(high - len(mentioned), 0)
            count = min(self._rng.randint(low, high) if high >= low else 0, len(candidates))
            self._rng.shuffle(candidates)
            selected = candidates[:count]

        chosen = {id(d) for d in mentioned + selected}
        skipped = [
            replace(d, should_respond=False, should_mention=False, target=None)
            for d in decisions
            if id(d) not in chosen
        ]
        plan = mentioned + selected + skipped
        logger.debug(
            "Round plan: %s",
            ", ".join(f"{d.agent_id}={'respond' if d.should_respond else 'skip'}" for d in plan),
        )
        return plan


# Strategy instructions injected into the prompt as an internal system message
MENTIONED_BY_AI = (
    "You were directly mentioned by {mentioner}. Respond specifically to their "
    "message and address the key points they raised."
)
MENTIONED_BY_USER = (
    "You were directly mentioned by the user. Respond directly to their message "
    "and focus on answering or acknowledging their mention."
)
STRATEGY_INSTRUCTIONS: dict[StrategyType, str] = {
    StrategyType.AGREE_EXPAND: (
        "Build on {sender}'s point and add your own insights. Show agreement but "
        "expand with new information or examples."
    ),
    StrategyType.CHALLENGE: (
        "Respectfully challenge {sender}'s perspective. Offer a counterpoint or "
        "alternative viewpoint while keeping it constructive."
    ),
    StrategyType.REDIRECT: (
        "Gracefully steer the conversation toward a related but new angle or topic "
        "that might be more interesting."
    ),
    StrategyType.QUESTION: (
        "Ask a thought-provoking question that will get the other AIs thinking and responding."
    ),
    StrategyType.DIRECT: "Respond directly to the most recent message with your perspective.",
}


def build_instruction(
    strategy: InteractionStrategy,
    last_message: ContextMessage | None,
) -> str | None:
    """Instruction text for a strategy, or None when nothing applies."""
    if last_message is None:
        return None
    if strategy.mentions_current_ai:
        if last_message.sender_type == "ai":
            mentioner = f"@{last_message.alias}" if last_message.alias else last_message.display_name
            return MENTIONED_BY_AI.format(mentioner=mentioner)
        return MENTIONED_BY_USER
    if strategy.type in (StrategyType.AGREE_EXPAND, StrategyType.CHALLENGE):
        if last_message.sender_type != "ai":
            return None
        return STRATEGY_INSTRUCTIONS[strategy.type].format(sender=last_message.sender)
    return STRATEGY_INSTRUCTIONS[strategy.type]
