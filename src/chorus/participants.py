"""Participant identities, configuration models and default personas."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator

from .mentions import MentionTarget, normalize_alias, to_mention_alias

if TYPE_CHECKING:
    from .adapters.base import AgentAdapter
    from .context import ContextMessage

DEFAULT_EMOJI = "\U0001f916"


class PersonaTrait(BaseModel):
    """Personality injected into a participant's system prompt."""

    base_personality: str
    traits: list[str] = Field(default_factory=list)
    speech_patterns: list[str] = Field(default_factory=list)


class ParticipantConfig(BaseModel):
    """
    Configuration for one AI participant.

    Example:
        ParticipantConfig(provider_key="anthropic", model_key="claude-3-5-haiku-latest",
                          display_name="Claude", alias="claude")
    """

    provider_key: str
    model_key: str
    display_name: str | None = None
    alias: str | None = None
    emoji: str | None = None
    system_prompt: str | None = None
    persona: PersonaTrait | None = None
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("provider_key", "model_key")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @property
    def participant_id(self) -> str:
        return f"{self.provider_key}_{self.model_key}"


@dataclass
class Participant:
    """
    One configured AI identity in the room.

    Attributes:
        id: Stable key, ``"{provider_key}_{model_key}"``
        name: Name reported by the adapter
        display_name: Name shown in the room
        alias: Mention alias (``@alias``)
        normalized_alias: Canonical match key
        adapter: Bound agent adapter
        is_generating: True while a response is in flight
    """

    id: str
    name: str
    display_name: str
    alias: str
    normalized_alias: str
    provider_key: str
    model_key: str
    adapter: "AgentAdapter | None" = None
    emoji: str = DEFAULT_EMOJI
    is_active: bool = True
    is_generating: bool = False
    last_message_time: datetime | None = None
    system_prompt: str | None = None
    persona: PersonaTrait | None = None

    @classmethod
    def from_config(
        cls,
        config: ParticipantConfig,
        adapter: "AgentAdapter | None" = None,
        name: str | None = None,
    ) -> "Participant":
        """Build a participant, deriving display name and alias when not configured."""
        display_name = config.display_name or name or config.model_key
        alias = (config.alias or to_mention_alias(display_name, config.model_key)).lstrip("@")
        return cls(
            id=config.participant_id,
            name=name or display_name,
            display_name=display_name,
            alias=alias,
            normalized_alias=normalize_alias(alias),
            provider_key=config.provider_key,
            model_key=config.model_key,
            adapter=adapter,
            emoji=config.emoji or DEFAULT_EMOJI,
            system_prompt=config.system_prompt,
            persona=config.persona or DEFAULT_PERSONAS.get(config.provider_key.lower()),
        )

    @property
    def mention_token(self) -> MentionTarget:
        """How other participants address this one."""
        return MentionTarget(type="ai", alias=self.alias, display_name=self.display_name)

    def snapshot(self) -> dict[str, Any]:
        """Read-only view for metrics collectors."""
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "alias": self.alias,
            "normalized_alias": self.normalized_alias,
            "emoji": self.emoji,
            "provider_key": self.provider_key,
            "model_key": self.model_key,
            "is_active": self.is_active,
            "is_generating": self.is_generating,
            "last_message_time": (
                self.last_message_time.isoformat() if self.last_message_time else None
            ),
        }


def find_by_alias(participants: Iterable[Participant], alias: str) -> Participant | None:
    """Look up a participant by any spelling of its alias."""
    key = normalize_alias(alias)
    if not key:
        return None
    for participant in participants:
        if participant.normalized_alias == key:
            return participant
    return None


def find_sender(
    participants: Iterable[Participant], message: "ContextMessage"
) -> Participant | None:
    """The participant that authored a stored message, if it was an AI."""
    if message.sender_type != "ai":
        return None
    pool = list(participants)
    if message.ai_id:
        for participant in pool:
            if participant.id == message.ai_id:
                return participant
    return find_by_alias(pool, message.alias) or find_by_alias(pool, message.display_name)


DEFAULT_PERSONAS: dict[str, PersonaTrait] = {
    "anthropic": PersonaTrait(
        base_personality=(
            "Thoughtful philosopher. Careful, nuanced thinker who considers multiple "
            "perspectives and acknowledges uncertainty while remaining engaging."
        ),
        traits=[
            "Thoughtful and deliberate",
            "Intellectually honest about limitations",
            "Curious and exploratory",
        ],
        speech_patterns=[
            "Often considers multiple angles",
            "Uses measured, thoughtful language",
        ],
    ),
    "openai": PersonaTrait(
        base_personality=(
            "Versatile generalist. Quick, practical and upbeat, likes turning ideas "
            "into concrete next steps."
        ),
        traits=["Practical", "Energetic", "Broadly knowledgeable"],
        speech_patterns=["Offers concrete examples", "Summarizes crisply"],
    ),
    "gemini": PersonaTrait(
        base_personality=(
            "Curious researcher. Loves connecting ideas across domains and bringing "
            "in surprising facts."
        ),
        traits=["Inquisitive", "Fact-oriented", "Enthusiastic about discovery"],
        speech_patterns=["Draws analogies", "Asks follow-up questions"],
    ),
    "mistral": PersonaTrait(
        base_personality="Direct engineer. Concise, pragmatic and a little dry.",
        traits=["Efficient", "Pragmatic", "Understated humor"],
        speech_patterns=["Short sentences", "Gets straight to the point"],
    ),
}
