"""
Chat Room Example
=================

This example runs a small room with three AI participants:
- A user message that mentions one AI directly
- An unaddressed message answered by a spontaneous responder
- A topic change and the room status afterwards

By default every participant uses litellm's mock_response, so no API keys
are needed. Set CHORUS_LIVE=1 (and OPENAI_API_KEY / ANTHROPIC_API_KEY /
GEMINI_API_KEY, e.g. in a .env file) to talk to real models.

To run this example:
    uv run python examples/chat_room.py
"""

import asyncio
import logging
import os

from chorus import (
    ConversationOrchestrator,
    IncomingMessage,
    OrchestratorConfig,
    ParticipantConfig,
    load_env_files,
    parse_bool_flag,
)
from chorus.observability import StatusEvent, create_logging_callbacks

# ============================================================================
# Participants
# ============================================================================

LIVE = parse_bool_flag(os.getenv("CHORUS_LIVE"))


def participant(provider: str, model: str, name: str, alias: str, reply: str) -> ParticipantConfig:
    options = {} if LIVE else {"mock_response": reply}
    return ParticipantConfig(
        provider_key=provider,
        model_key=model,
        display_name=name,
        alias=alias,
        options={**options, "temperature": 0.8, "max_tokens": 200},
    )


PARTICIPANTS = [
    participant(
        "anthropic",
        "claude-3-5-haiku-latest",
        "Claude",
        "claude",
        "I'd start with the trade-offs before picking a side.",
    ),
    participant(
        "openai",
        "gpt-4o-mini",
        "GPT",
        "gpt",
        "Concrete example: ship the smallest version first and measure.",
    ),
    participant(
        "gemini",
        "gemini-2.0-flash",
        "Gemini",
        "gemini",
        "Fun fact, the first compiler was written in 1952.",
    ),
]


# ============================================================================
# Main
# ============================================================================


async def main():
    load_env_files()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    # Short delays so the example finishes quickly
    config = OrchestratorConfig.from_env(
        min_background_delay=500,
        max_background_delay=1_500,
        background_enabled=False,
        personas_enabled=True,
    )
    callbacks = create_logging_callbacks(logging.getLogger("chat_room"))

    @callbacks.on_response
    def show(event):
        print(f"\n[{event.display_name}] {event.message.content}\n")

    @callbacks.on_status
    def status(event: StatusEvent):
        if event.kind in ("sleeping", "awakened", "topic-changed"):
            print(f"*** {event.kind} {event.detail}")

    async with ConversationOrchestrator(config, callbacks=callbacks) as room:
        added = await room.initialize_ais(PARTICIPANTS)
        print(f"Room ready with: {', '.join('@' + p.alias for p in added)}")

        print("\n" + "=" * 60)
        print("Example 1: Direct mention")
        print("=" * 60)
        room.on_message(
            IncomingMessage(content="@claude should we rewrite the parser?", sender="Bob")
        )
        await room.scheduler.wait_idle()

        print("\n" + "=" * 60)
        print("Example 2: Open question")
        print("=" * 60)
        room.on_message(IncomingMessage(content="Anyone have a favourite language?", sender="Bob"))
        await room.scheduler.wait_idle()

        print("\n" + "=" * 60)
        print("Example 3: Topic change")
        print("=" * 60)
        room.change_topic("history of compilers", changed_by="Bob")
        room.on_message(IncomingMessage(content="@gemini @gpt go!", sender="Bob"))
        await room.scheduler.wait_idle()

        print("\nStatus:", room.status())
        print("Metrics:", room.metrics.get_report())


if __name__ == "__main__":
    asyncio.run(main())
