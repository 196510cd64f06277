"""System prompt and message construction for participants."""

import re
from collections.abc import Sequence
from typing import Any

from jinja2 import DictLoader, Environment, StrictUndefined, TemplateNotFound, UndefinedError

from .context import ContextMessage, summarize_messages
from .participants import Participant, PersonaTrait
from .types import ConfigurationError, Message

INTRO_USER_RESPONSE = "A user just posted. Respond naturally and conversationally."
INTRO_BACKGROUND = "Continue the ongoing conversation between AIs."

GUIDELINES = """Key guidelines:
- Keep responses 1-3 sentences and conversational
- Reference recent messages and build on ideas
- Use @mentions naturally when addressing someone, sometimes at the start, sometimes at the end
- Feel free to challenge, expand on, or redirect the conversation
- Show personality and distinct perspectives
- The latest messages are most important for context
- Don't repeat what others just said, add new value
- Ask questions to spark further discussion"""

CLOSING = "Respond naturally and keep the conversation flowing!"

PERSONA_MARKER = "PERSONALITY CONTEXT:"

DEFAULT_TEMPLATES: dict[str, str] = {
    "system": (
        "You are {{ name }}, an AI participating in a dynamic group chat. {{ intro }}\n"
        "{{ guidelines }}\n"
        "\n"
        "Other AIs in this chat: {{ others | join(', ') }}\n"
        "{% if instructions %}\n"
        "Additional instructions: {{ instructions }}\n"
        "{% endif %}\n"
        "{{ closing }}"
    ),
    "persona": (
        "PERSONALITY CONTEXT: {{ persona.base_personality }}\n"
        "\n"
        "Key traits to embody:\n"
        "{% for trait in persona.traits %}\n"
        "- {{ trait }}\n"
        "{% endfor %}\n"
        "\n"
        "Communication patterns:\n"
        "{% for pattern in persona.speech_patterns %}\n"
        "- {{ pattern }}\n"
        "{% endfor %}\n"
        "\n"
        "Stay true to this personality without explicitly mentioning it.\n"
        "\n"
        "---\n"
        "\n"
        "ORIGINAL INSTRUCTIONS: "
    ),
}

_INVALID_NAME_CHARS = re.compile(r"[\s<|\\/>]+")


def sanitize_name(name: str) -> str:
    """Make a display name safe for the chat API ``name`` field (``"Claude Sonnet"`` -> ``"Claude_Sonnet"``)."""
    return _INVALID_NAME_CHARS.sub("_", name).strip("_")


def user_message(content: str, name: str | None = None) -> Message:
    """Create a user message."""
    msg: Message = {"role": "user", "content": content}
    if name:
        msg["name"] = name
    return msg


def system_message(content: str) -> Message:
    """Create a system message."""
    return {"role": "system", "content": content}


def assistant_message(content: str, name: str | None = None) -> Message:
    """Create an assistant message."""
    msg: Message = {"role": "assistant", "content": content}
    if name:
        msg["name"] = name
    return msg


class PromptBuilder:
    """
    Renders participant system prompts from Jinja templates.

    Templates can be overridden per instance; missing variables raise
    instead of rendering as empty strings.

    Example:
        builder = PromptBuilder()
        prompt = builder.system_prompt(claude, context, others=["GPT", "Gemini"])
    """

    def __init__(self, templates: dict[str, str] | None = None):
        self.env = Environment(
            loader=DictLoader({**DEFAULT_TEMPLATES, **(templates or {})}),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template_name: str, /, **variables: Any) -> str:
        try:
            return self.env.get_template(template_name).render(**variables)
        except (TemplateNotFound, UndefinedError) as e:
            raise ConfigurationError(f"Failed to render prompt template '{template_name}': {e}") from e

    def persona_block(self, persona: PersonaTrait) -> str:
        return self.render("persona", persona=persona)

    def system_prompt(
        self,
        agent: Participant,
        context: Sequence[ContextMessage],
        others: Sequence[str] = (),
        personas_enabled: bool = False,
        is_user_response: bool = True,
        summary_window: int = 5,
    ) -> str:
        """
        Build the full system prompt for one participant.

        The room prompt is prefixed with the persona block only when personas
        are enabled and the participant has one; otherwise no persona text
        appears at all. A digest of recent turns is appended.

        Args:
            agent: Participant being prompted
            context: Messages the prompt is built from
            others: Display names of the other participants
            personas_enabled: Whether to include persona text
            is_user_response: Whether the reply answers a user message
            summary_window: Number of turns in the digest

        Returns:
            The rendered prompt
        """
        prompt = self.render(
            "system",
            name=agent.display_name,
            intro=INTRO_USER_RESPONSE if is_user_response else INTRO_BACKGROUND,
            guidelines=GUIDELINES,
            others=list(others),
            instructions=agent.system_prompt or "",
            closing=CLOSING,
        )
        if personas_enabled and agent.persona is not None:
            prompt = self.persona_block(agent.persona) + prompt
        return prompt + "\n\n" + summarize_messages(list(context), summary_window)


def build_messages(
    agent: Participant,
    system_prompt: str,
    context: Sequence[ContextMessage],
    instruction: str | None = None,
) -> list[Message]:
    """
    Build the message list from one participant's perspective.

    - System prompt first
    - The participant's own messages become "assistant" role
    - Everyone else's messages become "user" role with a ``name`` field
    - The strategy instruction, if any, closes the list as a system message
    """
    messages: list[Message] = [system_message(system_prompt)]
    for msg in context:
        if msg.sender_type == "ai" and (msg.ai_id == agent.id or msg.normalized_alias == agent.normalized_alias):
            messages.append(assistant_message(msg.content, name=sanitize_name(agent.display_name)))
        else:
            messages.append(user_message(msg.content, name=sanitize_name(msg.display_name)))
    if instruction:
        messages.append(system_message(instruction))
    return messages
