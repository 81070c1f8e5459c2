"""
Agent Models
Pydantic models for the automated agent configuration, behavior settings,
knowledge items and activity log
"""
from pydantic import BaseModel, Field, model_validator
from typing import Optional
from datetime import datetime
from enum import Enum


class ChannelType(str, Enum):
    """Channel types an agent can be enabled on"""
    INTERNAL = "internal"
    WHATSAPP = "whatsapp"
    EMAIL = "email"
    INSTAGRAM = "instagram"


class KnowledgeSourceType(str, Enum):
    TEXT = "text"
    LINK = "link"
    FILE = "file"


# Defaults applied when an agent has no settings row yet
DEFAULT_AGENT_SETTINGS = {
    "response_delay_ms": 1200,
    "use_chunked_messages": True,
    "allow_audio": True,
    "allow_images": True,
    "allow_handoff_human": True,
    "allow_scheduling": True,
    "typing_simulation": True,
    "max_chunks": 6,
    "max_consecutive_replies": 5,
}


# ============================================
# PERSISTED ENTITIES
# ============================================

class AgentConfiguration(BaseModel):
    """The single automated agent configured for a tenant"""
    id: str = Field(..., description="Agent UUID")
    tenant_id: str = Field(..., description="Tenant UUID")
    name: str = Field(..., description="Agent display name")
    is_active: bool = Field(default=False, description="Global on/off switch")
    system_prompt: str = Field(default="", description="System instructions")
    user_prompt: Optional[str] = Field(None, description="Optional supplemental instructions")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AgentBehaviorSettings(BaseModel):
    """Per-agent delivery behavior"""
    tenant_id: Optional[str] = None
    agent_id: Optional[str] = None
    response_delay_ms: int = Field(default=1200, description="Fixed delay before the first fragment")
    use_chunked_messages: bool = Field(default=True, description="Split replies into short fragments")
    max_chunks: int = Field(default=6, description="Maximum fragments per reply")
    max_consecutive_replies: int = Field(default=5, description="Maximum trailing automated messages")
    typing_simulation: bool = Field(default=True, description="Add a length-proportional typing delay")
    allow_audio: bool = True
    allow_images: bool = True
    allow_handoff_human: bool = True
    allow_scheduling: bool = True


class AgentChannel(BaseModel):
    """Per-channel enablement for an agent"""
    tenant_id: str
    agent_id: str
    channel_type: str
    is_enabled: bool = False


class KnowledgeItem(BaseModel):
    """Titled reference material used to ground replies"""
    id: Optional[str] = None
    tenant_id: Optional[str] = None
    agent_id: Optional[str] = None
    title: str
    source_type: str = KnowledgeSourceType.TEXT.value
    content: Optional[str] = None
    source_url: Optional[str] = None
    file_path: Optional[str] = None
    created_at: Optional[datetime] = None


class ActivityLogEntry(BaseModel):
    """One completed automated run"""
    id: Optional[str] = None
    tenant_id: str
    thread_id: str
    channel_type: str
    responded_at: Optional[datetime] = None
    content_summary: Optional[str] = None
    interrupted_by_handoff: bool = False


# ============================================
# REQUEST MODELS (validated before persistence)
# ============================================

class AgentUpsertRequest(BaseModel):
    """Request model for creating or editing the tenant agent"""
    name: str = Field(..., min_length=2, max_length=80, description="Agent name")
    is_active: bool = Field(..., description="Whether the agent replies automatically")
    system_prompt: str = Field(..., min_length=20, max_length=12000, description="System instructions")
    user_prompt: Optional[str] = Field(None, max_length=12000, description="Supplemental instructions")

    @model_validator(mode="before")
    @classmethod
    def _strip_strings(cls, data):
        if isinstance(data, dict):
            return {k: v.strip() if isinstance(v, str) else v for k, v in data.items()}
        return data

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Support Assistant",
                "is_active": True,
                "system_prompt": "You are a friendly support assistant for our store.",
                "user_prompt": None
            }
        }


class AgentSettingsUpdateRequest(BaseModel):
    """Partial update of agent behavior settings"""
    response_delay_ms: Optional[int] = Field(None, ge=0, le=15000)
    use_chunked_messages: Optional[bool] = None
    max_chunks: Optional[int] = Field(None, ge=1, le=12)
    max_consecutive_replies: Optional[int] = Field(None, ge=1, le=20)
    typing_simulation: Optional[bool] = None
    allow_audio: Optional[bool] = None
    allow_images: Optional[bool] = None
    allow_handoff_human: Optional[bool] = None
    allow_scheduling: Optional[bool] = None

    class Config:
        json_schema_extra = {
            "example": {
                "response_delay_ms": 800,
                "max_chunks": 4,
                "typing_simulation": False
            }
        }


class ChannelEnablementRequest(BaseModel):
    is_enabled: bool = Field(..., description="Enable the agent on this channel")
