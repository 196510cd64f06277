"""
chorus - conversation orchestration for multi-party AI chat rooms.

Several AI participants share one room with human users. chorus decides
who replies, when, and whom they address, while keeping the context
bounded and shrugging off failing backends.

Example:
    from chorus import ConversationOrchestrator, IncomingMessage, ParticipantConfig

    async with ConversationOrchestrator() as room:
        await room.initialize_ais([
            ParticipantConfig(provider_key="openai", model_key="gpt-4o-mini", alias="gpt"),
        ])
        room.on_message(IncomingMessage(content="@gpt hello!", sender="Bob"))
"""

from .adapters import (
    AdapterRegistry,
    AgentAdapter,
    BaseAgentAdapter,
    LiteLLMAdapter,
    RetryPolicy,
    default_registry,
)
from .config import OrchestratorConfig, load_env_files, parse_bool_flag, validate_api_keys
from .context import ContextMessage, ContextStore, IncomingMessage
from .mentions import (
    MentionResolver,
    MentionTarget,
    ParsedMentions,
    normalize_alias,
    parse_mentions,
    to_mention_alias,
)
from .observability import (
    CallbackManager,
    ErrorEvent,
    MetricsTracker,
    ResponseEvent,
    StatusEvent,
    StructuredLogger,
)
from .orchestrator import ConversationOrchestrator
from .participants import Participant, ParticipantConfig, PersonaTrait
from .postprocess import add_mention, limit_mentions, process_response, truncate_response
from .prompts import PromptBuilder
from .scheduler import CancellationToken, ScheduledTask, TaskState, TurnScheduler
from .strategy import InteractionStrategy, StrategyEngine, StrategyType
from .types import (
    AdapterTimeoutError,
    AgentResponse,
    AIServiceError,
    ChorusError,
    ConfigurationError,
    NetworkError,
    RetryConfig,
    UsageInfo,
)

__version__ = "0.1.0"

__all__ = [
    # Orchestration
    "ConversationOrchestrator",
    "OrchestratorConfig",
    "IncomingMessage",
    "ContextMessage",
    "ContextStore",
    "StrategyEngine",
    "InteractionStrategy",
    "StrategyType",
    "TurnScheduler",
    "ScheduledTask",
    "TaskState",
    "CancellationToken",
    "PromptBuilder",
    # Participants and adapters
    "Participant",
    "ParticipantConfig",
    "PersonaTrait",
    "AgentAdapter",
    "BaseAgentAdapter",
    "AdapterRegistry",
    "LiteLLMAdapter",
    "RetryPolicy",
    "default_registry",
    "AgentResponse",
    "UsageInfo",
    "RetryConfig",
    # Mentions and post-processing
    "MentionResolver",
    "MentionTarget",
    "ParsedMentions",
    "normalize_alias",
    "parse_mentions",
    "to_mention_alias",
    "add_mention",
    "limit_mentions",
    "truncate_response",
    "process_response",
    # Observability
    "CallbackManager",
    "ResponseEvent",
    "ErrorEvent",
    "StatusEvent",
    "StructuredLogger",
    "MetricsTracker",
    # Config
    "load_env_files",
    "validate_api_keys",
    "parse_bool_flag",
    # Errors
    "ChorusError",
    "ConfigurationError",
    "NetworkError",
    "AIServiceError",
    "AdapterTimeoutError",
]
