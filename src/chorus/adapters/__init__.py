"""Agent adapters: the lifecycle contract, a registry and the litellm backend."""

from .base import AgentAdapter, BaseAgentAdapter
from .litellm_adapter import LiteLLMAdapter
from .registry import AdapterFactory, AdapterRegistry, default_registry
from .retry import RetryPolicy

__all__ = [
    "AdapterFactory",
    "AdapterRegistry",
    "AgentAdapter",
    "BaseAgentAdapter",
    "LiteLLMAdapter",
    "RetryPolicy",
    "default_registry",
]
