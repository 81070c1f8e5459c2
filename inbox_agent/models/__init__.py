"""Pydantic models"""
from .agent import (
    ChannelType,
    KnowledgeSourceType,
    DEFAULT_AGENT_SETTINGS,
    AgentConfiguration,
    AgentBehaviorSettings,
    AgentChannel,
    KnowledgeItem,
    ActivityLogEntry,
    AgentUpsertRequest,
    AgentSettingsUpdateRequest,
    ChannelEnablementRequest,
)
from .inbox import (
    ThreadStatus,
    SenderType,
    Thread,
    Message,
    HandoffState,
    SendMessageRequest,
    HandoffRequest,
)
from .whatsapp import WhatsAppConnection, WhatsAppThreadLink, SendResult
from .webhook import InboundMessage, WebhookAckResponse, MEDIA_KINDS

__all__ = [
    "ChannelType",
    "KnowledgeSourceType",
    "DEFAULT_AGENT_SETTINGS",
    "AgentConfiguration",
    "AgentBehaviorSettings",
    "AgentChannel",
    "KnowledgeItem",
    "ActivityLogEntry",
    "AgentUpsertRequest",
    "AgentSettingsUpdateRequest",
    "ChannelEnablementRequest",
    "ThreadStatus",
    "SenderType",
    "Thread",
    "Message",
    "HandoffState",
    "SendMessageRequest",
    "HandoffRequest",
    "WhatsAppConnection",
    "WhatsAppThreadLink",
    "SendResult",
    "InboundMessage",
    "WebhookAckResponse",
    "MEDIA_KINDS",
]
