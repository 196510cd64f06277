"""Response post-processing: truncation, mention limiting and mention injection."""

import random
import re
from typing import TYPE_CHECKING

from .mentions import MentionTarget, iter_mention_spans, normalize_alias, parse_mentions

if TYPE_CHECKING:
    from .strategy import InteractionStrategy

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_TERMINAL = re.compile(r"[.!?]$")

# Natural ways to weave a mention into a response
MENTION_FORMATS: tuple[str, ...] = (
    "{m}, {r}",
    "{m} - {r}",
    "Hey {m}, {r}",
    "{m}: {r}",
    "{r} What do you think, {m}?",
    "{r} Thoughts, {m}?",
    "{r} {m}, does that make sense?",
    "{r} How would you approach this, {m}?",
    "{r} What's your take on this, {m}?",
    "{r} Curious what {m} thinks about this.",
    "{r} Would love {m}'s input here.",
    "{r} {m} might have thoughts on this.",
    "{r} {m}, care to weigh in?",
    "{r} Maybe {m} has a different view?",
    "{r} cc {m}",
    "{r} Let's see what {m} says.",
    "{m}, building on what you said - {r}",
    "{m}, interesting point. {r}",
)


def truncate_response(
    text: str,
    max_sentences: int = 15,
    max_chars: int | None = 1200,
) -> str:
    """
    Bound a response to a sentence count and character length.

    Untouched responses are only stripped. A truncated response always ends
    on ``.``, ``!`` or ``?`` (a period is appended when the tail lacks one).

    Args:
        text: Raw model output
        max_sentences: Maximum number of sentences to keep
        max_chars: Maximum length in characters (None disables the cap)

    Returns:
        The bounded response
    """
    if not text:
        return ""

    result = text.strip()
    truncated = False

    sentences = [s for s in _SENTENCE_SPLIT.split(result) if s.strip()]
    if max_sentences > 0 and len(sentences) > max_sentences:
        result = " ".join(sentences[:max_sentences]).strip()
        truncated = True

    if max_chars and len(result) > max_chars:
        head = result[:max_chars]
        cut = max(head.rfind(". "), head.rfind("! "), head.rfind("? "))
        if cut > 0:
            head = head[: cut + 1]
        elif " " in head:
            head = head[: head.rfind(" ")]
        result = head.rstrip()
        truncated = True

    if truncated and not _TERMINAL.search(result):
        result = result.rstrip(",;:- ")
        if max_chars and len(result) >= max_chars:
            # room for the closing period
            result = result[: max_chars - 1].rstrip(",;:- ")
        result += "."

    return result


def limit_mentions(text: str, max_unique: int = 2) -> str:
    """
    Keep at most ``max_unique`` distinct mentions in text.

    Mentions are counted in order of appearance; every occurrence of a
    mention beyond the budget loses its ``@`` but the word stays. Applying
    this to its own output changes nothing.

    Example:
        limit_mentions("@Claude and @GPT should weigh in, plus @Gemini too.", 2)
        # "@Claude and @GPT should weigh in, plus Gemini too."
    """
    if not text or max_unique < 1:
        return text

    allowed: list[str] = []
    pieces: list[str] = []
    cursor = 0
    for start, _, token in iter_mention_spans(text):
        key = normalize_alias(token)
        if not key:
            continue
        if key not in allowed and len(allowed) < max_unique:
            allowed.append(key)
        if key not in allowed:
            pieces.append(text[cursor:start])
            cursor = start + 1  # drop the "@" only
    pieces.append(text[cursor:])
    return "".join(pieces)


def add_mention(
    text: str,
    target: MentionTarget | str | None,
    rng: random.Random | None = None,
    max_unique: int = 2,
) -> str:
    """
    Address ``target`` in a response with a natural ``@handle``.

    The handle keeps its original casing. Nothing changes when the target
    is already mentioned, when the response already carries ``max_unique``
    distinct mentions, or when there is no usable handle.

    Args:
        text: Response text
        target: Who to address; a bare string is treated as an AI alias
        rng: Random source for picking the phrasing
        max_unique: Mention budget for the whole response

    Returns:
        The response, possibly with a mention woven in
    """
    if target is None:
        return text
    if isinstance(target, str):
        target = MentionTarget(type="ai", alias=target)

    handle = target.handle
    key = normalize_alias(handle)
    if not key:
        return text

    existing = parse_mentions(text)
    if key in existing.normalized or handle in text:
        return text
    if len(existing) >= max_unique:
        return text

    template = (rng or random).choice(MENTION_FORMATS)
    return template.format(m=handle, r=text)


def process_response(
    text: str,
    strategy: "InteractionStrategy | None" = None,
    rng: random.Random | None = None,
    max_sentences: int = 15,
    max_chars: int | None = 1200,
) -> str:
    """Run the full pipeline: truncate, limit mentions, then inject the strategy's mention."""
    budget = strategy.mention_budget if strategy is not None else 2
    result = truncate_response(text, max_sentences=max_sentences, max_chars=max_chars)
    result = limit_mentions(result, budget)
    if strategy is not None and strategy.should_mention and strategy.target is not None:
        result = add_mention(result, strategy.target, rng=rng, max_unique=budget)
    return result
