"""Bounded conversation context store."""

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .mentions import MentionResolver, normalize_alias, parse_mentions
from .types import Role, SenderType

logger = logging.getLogger(__name__)

NO_HISTORY = "No conversation history."


@dataclass
class IncomingMessage:
    """A message handed to the orchestrator's intake path.

    Attributes:
        content: Message text
        sender: Raw sender identity (user name or AI display name)
        sender_type: "user", "ai" or "system"
        display_name: Name shown in the room (defaults to sender)
        alias: Mention alias of the sender (defaults to sender)
        ai_id: Participant id when an AI sent the message
        internal: Prompt-only messages that never enter the visible history
        suppress_responses: Store the message but schedule no AI replies
    """

    content: str
    sender: str
    sender_type: SenderType = "user"
    display_name: str | None = None
    alias: str | None = None
    ai_id: str | None = None
    model_key: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    internal: bool = False
    suppress_responses: bool = False


@dataclass(frozen=True)
class ContextMessage:
    """An immutable record in the context store."""

    id: str
    role: Role
    content: str
    timestamp: datetime
    sender: str
    sender_type: SenderType
    display_name: str
    alias: str
    normalized_alias: str
    ai_id: str | None = None
    model_key: str | None = None
    mentions: tuple[str, ...] = ()
    mentions_normalized: tuple[str, ...] = ()

    @property
    def label(self) -> str:
        """Speaker label used in summaries."""
        return "User" if self.sender_type == "user" else self.display_name

    def mentions_alias(self, alias: str) -> bool:
        """Whether this message mentions the given alias (normalized match)."""
        key = normalize_alias(alias)
        return bool(key) and key in self.mentions_normalized

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "sender": self.sender,
            "sender_type": self.sender_type,
            "display_name": self.display_name,
            "alias": self.alias,
            "normalized_alias": self.normalized_alias,
            "ai_id": self.ai_id,
            "model_key": self.model_key,
            "mentions": list(self.mentions),
            "mentions_normalized": list(self.mentions_normalized),
        }


def summarize_messages(messages: list[ContextMessage], window_size: int = 5) -> str:
    """Human-readable digest of the last ``window_size`` messages."""
    if not messages:
        return NO_HISTORY
    lines = ["Recent conversation:"]
    for msg in messages[-window_size:] if window_size > 0 else []:
        lines.append(f"{msg.label}: {msg.content[:100]}...")
    return "\n".join(lines)


class ContextStore:
    """
    Bounded, ordered message history.

    Holds at most ``max_messages`` records and evicts the oldest first.
    Mentions are parsed once on append and cached on the record.

    Example:
        store = ContextStore(max_messages=3)
        store.append(IncomingMessage(content="@claude hi", sender="Bob"))
        store.last().mentions_normalized  # ("claude",)
        store.summary()
    """

    def __init__(
        self,
        max_messages: int = 100,
        resolver: MentionResolver | None = None,
    ):
        self._max_messages = max(1, max_messages)
        self._messages: deque[ContextMessage] = deque(maxlen=self._max_messages)
        self.resolver = resolver

    # -- Mutation --------------------------------------------------------

    def append(self, message: IncomingMessage | ContextMessage) -> ContextMessage | None:
        """
        Store a message.

        Args:
            message: An incoming message or an already-built record

        Returns:
            The stored record, or None for internal messages
        """
        if isinstance(message, ContextMessage):
            record = message
        else:
            if message.internal:
                return None
            record = self._build(message)
        self._messages.append(record)
        return record

    def _build(self, message: IncomingMessage) -> ContextMessage:
        if self.resolver is not None:
            parsed = self.resolver.parse(message.content)
        else:
            parsed = parse_mentions(message.content)
        alias = (message.alias or message.sender or "").lstrip("@")
        return ContextMessage(
            id=message.id,
            role="user" if message.sender_type == "user" else "assistant",
            content=message.content,
            timestamp=message.timestamp,
            sender=message.sender,
            sender_type=message.sender_type,
            display_name=message.display_name or message.sender,
            alias=alias,
            normalized_alias=normalize_alias(alias),
            ai_id=message.ai_id,
            model_key=message.model_key,
            mentions=tuple(parsed.raw),
            mentions_normalized=tuple(parsed.normalized),
        )

    def clear(self) -> None:
        """Remove every message."""
        self._messages.clear()

    def update_config(self, max_messages: int | None = None) -> None:
        """
        Adjust the bound live.

        Shrinking keeps only the newest ``max_messages`` records.
        """
        if max_messages is None or max_messages < 1:
            return
        self._max_messages = max_messages
        self._messages = deque(self._messages, maxlen=max_messages)
        logger.debug("Context bound updated to %d messages", max_messages)

    # -- Queries ---------------------------------------------------------

    @property
    def max_messages(self) -> int:
        return self._max_messages

    @property
    def config(self) -> dict[str, int]:
        """Copy of the live configuration."""
        return {"max_messages": self._max_messages}

    def size(self) -> int:
        return len(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def has_messages(self) -> bool:
        return bool(self._messages)

    def recent(self, limit: int = 50) -> list[ContextMessage]:
        """The newest ``limit`` messages, oldest first."""
        if limit <= 0:
            return []
        messages = list(self._messages)
        return messages[-limit:]

    def all(self) -> list[ContextMessage]:
        """Every stored message, oldest first (a copy)."""
        return list(self._messages)

    def last(self) -> ContextMessage | None:
        return self._messages[-1] if self._messages else None

    def by_sender(self, sender: str) -> list[ContextMessage]:
        """Messages whose sender, alias or AI id matches (aliases compare normalized)."""
        key = normalize_alias(sender)
        return [
            m
            for m in self._messages
            if m.sender == sender or m.ai_id == sender or (key and m.normalized_alias == key)
        ]

    def by_role(self, role: Role) -> list[ContextMessage]:
        return [m for m in self._messages if m.role == role]

    def with_mentions(self) -> list[ContextMessage]:
        return [m for m in self._messages if m.mentions_normalized]

    def summary(self, window_size: int = 5) -> str:
        """Digest of the last ``window_size`` turns for prompt injection."""
        return summarize_messages(list(self._messages), window_size)

    def metrics(self) -> dict[str, Any]:
        """
        Snapshot of store usage.

        Returns:
            Dictionary with counts, utilization and message ages in seconds
        """
        now = datetime.now(UTC)
        total = len(self._messages)
        oldest = self._messages[0] if self._messages else None
        newest = self._messages[-1] if self._messages else None
        return {
            "total_messages": total,
            "user_messages": sum(1 for m in self._messages if m.role == "user"),
            "assistant_messages": sum(1 for m in self._messages if m.role == "assistant"),
            "max_messages": self._max_messages,
            "utilization_percent": round(total / self._max_messages * 100, 1),
            "oldest_message_age": (now - oldest.timestamp).total_seconds() if oldest else None,
            "newest_message_age": (now - newest.timestamp).total_seconds() if newest else None,
        }
