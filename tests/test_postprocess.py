"""Tests for response post-processing."""

import random
import re

import pytest

from chorus.mentions import MentionTarget, parse_mentions
from chorus.postprocess import add_mention, limit_mentions, process_response, truncate_response
from chorus.strategy import InteractionStrategy


class TestLimitMentions:
    """Tests for limit_mentions."""

    def test_keeps_first_unique_mentions(self):
        """Mentions beyond the budget lose their @ but keep the word."""
        text = "@Claude and @GPT should weigh in, plus @Gemini too."
        assert limit_mentions(text, 2) == "@Claude and @GPT should weigh in, plus Gemini too."

    def test_idempotent(self):
        """Applying the limit twice should change nothing."""
        text = "@a @b @c and @d"
        once = limit_mentions(text, 2)
        assert limit_mentions(once, 2) == once

    @pytest.mark.parametrize(
        "text",
        [
            "@a @b @a.@c",
            "@a @b @a-@c and @d",
            "@a @b x.@c.@d",
            "@a@b @c @d@e",
            "@a @b @c@@d @e-.@f",
            "(@a) @b, @c; @a.b @c-d.@e",
        ],
    )
    def test_idempotent_on_run_on_tokens(self, text):
        """Stripping an @ must never expose a new mention on the next pass."""
        once = limit_mentions(text, 2)
        assert limit_mentions(once, 2) == once
        assert len(parse_mentions(once)) <= 2

    def test_repeated_mentions(self):
        """Every occurrence over the budget is stripped; allowed ones repeat freely."""
        assert limit_mentions("@a @b @c and again @c, @a", 2) == "@a @b c and again c, @a"

    def test_within_budget_unchanged(self):
        """Test text already within budget."""
        assert limit_mentions("@a and @A", 1) == "@a and @A"

    def test_zero_budget_is_noop(self):
        """Test that a non-positive budget leaves text alone."""
        assert limit_mentions("@a @b", 0) == "@a @b"


class TestAddMention:
    """Tests for add_mention."""

    def test_adds_user_handle_with_casing(self):
        """Should address a user by display name, casing kept."""
        text = "I agree with that."
        result = add_mention(
            text, MentionTarget(type="user", alias="", display_name="Bob"), rng=random.Random(3)
        )
        assert result != text
        assert "@Bob" in result
        assert "@bob" not in result
        assert text in result

    def test_skips_when_already_mentioned(self):
        """Test that an existing mention (any casing) is left alone."""
        text = "@bob great point."
        target = MentionTarget(type="user", alias="Bob", display_name="Bob")
        assert add_mention(text, target) == text

    def test_skips_when_budget_full(self):
        """Test that no mention is added once the budget is used."""
        text = "@a and @b said so."
        assert add_mention(text, MentionTarget(type="ai", alias="c"), max_unique=2) == text

    def test_string_target_is_ai_alias(self):
        """Test bare string targets."""
        assert "@gpt" in add_mention("Nice.", "gpt", rng=random.Random(1))

    def test_no_target(self):
        """Test that a missing target is a no-op."""
        assert add_mention("Nice.", None) == "Nice."
        assert add_mention("Nice.", MentionTarget(type="ai", alias="")) == "Nice."


class TestTruncateResponse:
    """Tests for truncate_response."""

    def test_sentence_cap(self):
        """Should keep at most max_sentences sentences."""
        text = " ".join(f"Sentence number {i}." for i in range(20))
        result = truncate_response(text, max_sentences=15)
        assert len(re.split(r"(?<=[.!?])\s+", result)) == 15
        assert result.endswith("Sentence number 14.")

    def test_char_cap_at_word_boundary(self):
        """Should cut at a word boundary and close with a period."""
        result = truncate_response("word " * 400, max_chars=50)
        assert len(result) <= 50
        assert result.endswith("word.")

    def test_char_cap_without_spaces(self):
        """Test that the closing period still fits inside max_chars."""
        result = truncate_response("x" * 50, max_chars=20)
        assert len(result) == 20
        assert result == "x" * 19 + "."

    def test_char_cap_prefers_sentence_end(self):
        """Test that the cut lands on the last sentence ending when there is one."""
        text = "First sentence here. " + "x" * 100
        assert truncate_response(text, max_chars=50) == "First sentence here."

    def test_short_text_only_stripped(self):
        """Test that short responses are untouched apart from whitespace."""
        assert truncate_response("  Hello there  ") == "Hello there"

    def test_empty(self):
        """Test empty input."""
        assert truncate_response("") == ""


class TestProcessResponse:
    """Tests for the full pipeline."""

    def test_adds_strategy_target(self):
        """Test that the strategy's target is addressed."""
        strategy = InteractionStrategy(
            agent_id="anthropic_claude",
            should_respond=True,
            should_mention=True,
            target=MentionTarget(type="user", alias="Bob", display_name="Bob"),
        )
        result = process_response("I think it's great.", strategy, rng=random.Random(0))
        assert "@Bob" in result

    def test_budget_respected(self):
        """Test that injection never exceeds the mention budget."""
        strategy = InteractionStrategy(
            agent_id="anthropic_claude",
            should_respond=True,
            should_mention=True,
            target=MentionTarget(type="user", alias="Bob", display_name="Bob"),
            mention_budget=2,
        )
        result = process_response("@a @b @c hi.", strategy)
        assert result == "@a @b c hi."
        assert len(parse_mentions(result)) == 2

    def test_without_strategy(self):
        """Test truncation and limiting without a strategy."""
        assert process_response("@a @b @c hi.", max_sentences=1) == "@a @b c hi."
