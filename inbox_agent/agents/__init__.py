"""
Agent runtime package

Eligibility gate, prompt assembly and channel adapters for the automated
inbox agent.
"""
from .agent_engine import (
    should_agent_respond,
    build_prompt,
    generate_agent_reply,
    AgentContext,
    BuiltPrompt,
)
from .channel_adapters import (
    ChannelAdapter,
    ChannelNotImplementedError,
    IncomingMessage,
    get_channel_adapter,
)

__all__ = [
    "should_agent_respond",
    "build_prompt",
    "generate_agent_reply",
    "AgentContext",
    "BuiltPrompt",
    "ChannelAdapter",
    "ChannelNotImplementedError",
    "IncomingMessage",
    "get_channel_adapter",
]
