"""External agent CLI integrations."""

from .base import MAX_FALLBACK_RETRIES, AgentProvider, StdinInvocation
from .process import AgentProcess, InvocationState, OutputLimitExceeded
from .providers import (
    AiderProvider,
    BUILTIN_PROVIDERS,
    ClaudeProvider,
    CodexProvider,
    CursorProvider,
    CustomProvider,
    QoderProvider,
)
from .registry import AgentRegistry

__all__ = [
    "AgentProcess",
    "AgentProvider",
    "AgentRegistry",
    "AiderProvider",
    "BUILTIN_PROVIDERS",
    "ClaudeProvider",
    "CodexProvider",
    "CursorProvider",
    "CustomProvider",
    "InvocationState",
    "MAX_FALLBACK_RETRIES",
    "OutputLimitExceeded",
    "QoderProvider",
    "StdinInvocation",
]
