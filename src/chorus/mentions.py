"""Mention parsing, alias normalization and roster matching."""

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Literal

# A token starts with a word character and may contain internal "-" or ".";
# an "@" glued to a preceding word character, "@", "." or "-" (e.g. an email
# address) is ignored.
_MENTION_PATTERN = re.compile(r"(?<![\w@.\-])@(\w(?:[\w.\-]*\w)?)")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_NON_SLUG = re.compile(r"[^a-z0-9-]+")


def normalize_alias(value: str | None) -> str:
    """
    Canonical identity key for aliases and mention tokens.

    Lowercases and strips every character outside ``a-z0-9``. Two strings
    name the same participant iff their normalized forms are equal.

    Example:
        normalize_alias("Bob-2") == normalize_alias("@bob2") == "bob2"
    """
    if not value:
        return ""
    return _NON_ALNUM.sub("", str(value).lower())


def to_mention_alias(value: str | None, fallback: str = "") -> str:
    """Build a mention-friendly slug, e.g. ``"GPT 4o Mini"`` -> ``"gpt-4o-mini"``."""
    if not value:
        return fallback
    slug = _NON_SLUG.sub("-", str(value).strip().lower()).strip("-")
    return slug or fallback


@dataclass(frozen=True)
class MentionTarget:
    """Who a response should address.

    Users are addressed by display name, AIs by their mention alias.
    """

    type: Literal["user", "ai"]
    alias: str
    display_name: str = ""

    @property
    def handle(self) -> str:
        """The ``@handle`` to inject, original casing kept."""
        if self.type == "user":
            name = (self.display_name or self.alias).strip()
        else:
            name = (self.alias or self.display_name).strip()
        if not name:
            return ""
        return name if name.startswith("@") else f"@{name}"


@dataclass
class ParsedMentions:
    """Mentions found in a piece of text.

    Attributes:
        raw: Tokens as typed (first-seen casing), de-duplicated by normalized form
        normalized: Canonical forms, parallel to ``raw``
    """

    raw: list[str] = field(default_factory=list)
    normalized: list[str] = field(default_factory=list)

    def add(self, raw: str, normalized: str) -> None:
        if normalized and normalized not in self.normalized:
            self.raw.append(raw)
            self.normalized.append(normalized)

    def __contains__(self, alias: object) -> bool:
        return isinstance(alias, str) and normalize_alias(alias) in self.normalized

    def __len__(self) -> int:
        return len(self.normalized)


def iter_mention_spans(text: str) -> Iterator[tuple[int, int, str]]:
    """Yield ``(start, end, token)`` for each ``@token`` in text; start points at the ``@``."""
    if not text:
        return
    for match in _MENTION_PATTERN.finditer(text):
        yield match.start(), match.end(), match.group(1)


def parse_mentions(text: str | None) -> ParsedMentions:
    """
    Extract ``@token`` mentions from free text.

    Args:
        text: Message content

    Returns:
        ParsedMentions in first-seen order, duplicates collapsed

    Example:
        parse_mentions("@Alice and @bob-2, also @alice")
        # raw=["Alice", "bob-2"], normalized=["alice", "bob2"]
    """
    parsed = ParsedMentions()
    for _, _, token in iter_mention_spans(text or ""):
        parsed.add(token, normalize_alias(token))
    return parsed


class MentionResolver:
    """
    Matches mentions against a roster of known aliases.

    Aliases may contain spaces or punctuation (``"@Claude Sonnet"``). When
    several aliases share a prefix the longest one wins, and a match needs a
    non-alphanumeric character (or end of text) right after it so that
    ``@Al`` never matches inside ``@Alice``.

    Example:
        resolver = MentionResolver(["Claude", "Claude Sonnet", "GPT"])
        resolver.match("@claude sonnet, thoughts?")  # ["Claude Sonnet"]
    """

    def __init__(self, aliases: Iterable[str] = ()):
        self._aliases: list[str] = []
        self._by_normalized: dict[str, str] = {}
        for alias in aliases:
            self.add(alias)

    def add(self, alias: str) -> None:
        """Register an alias; aliases normalizing to an existing key are ignored."""
        key = normalize_alias(alias)
        if not key or key in self._by_normalized:
            return
        self._by_normalized[key] = alias
        self._aliases.append(alias)
        self._aliases.sort(key=len, reverse=True)

    @property
    def aliases(self) -> list[str]:
        """Known aliases, longest first."""
        return list(self._aliases)

    def resolve(self, token: str) -> str | None:
        """Return the known alias whose normalized form equals the token's."""
        return self._by_normalized.get(normalize_alias(token))

    def _match_at(self, text: str, start: int) -> tuple[str, int] | None:
        """Longest roster alias beginning at ``start`` (just after an ``@``)."""
        lowered = text.lower()
        for alias in self._aliases:
            end = start + len(alias)
            if lowered[start:end] != alias.lower():
                continue
            if end < len(text) and text[end].isalnum():
                continue
            return alias, end
        return None

    def _scan(self, text: str) -> Iterator[tuple[str, str | None]]:
        """Yield ``(raw_token, matched_alias_or_None)`` for every mention in text."""
        tokens = {start: token for start, _, token in iter_mention_spans(text)}
        for start in range(len(text)):
            if text[start] != "@":
                continue
            if start > 0 and (text[start - 1].isalnum() or text[start - 1] in "_@.-"):
                continue
            hit = self._match_at(text, start + 1)
            if hit is not None:
                alias, end = hit
                yield text[start + 1 : end], alias
            elif start in tokens:
                token = tokens[start]
                yield token, self.resolve(token)

    def match(self, text: str | None) -> list[str]:
        """Known aliases mentioned in text, first-seen order, no duplicates."""
        found: list[str] = []
        for _, alias in self._scan(text or ""):
            if alias is not None and alias not in found:
                found.append(alias)
        return found

    def parse(self, text: str | None) -> ParsedMentions:
        """Like :func:`parse_mentions`, but roster aliases (including multi-word ones) win."""
        parsed = ParsedMentions()
        for raw, alias in self._scan(text or ""):
            parsed.add(raw, normalize_alias(alias if alias is not None else raw))
        return parsed
