"""
Inbox Models
Pydantic models for threads, messages and handoff state
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum


class ThreadStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    ARCHIVED = "archived"


class SenderType(str, Enum):
    """Who authored a message"""
    USER = "user"          # End user or agent operator
    AI = "ai"              # Automated agent
    EXTERNAL = "external"  # External contact (e.g. WhatsApp)


class Thread(BaseModel):
    id: str
    tenant_id: str
    channel_id: Optional[str] = None
    channel_type: str = Field(default="", description="Resolved type of the thread's channel")
    subject: Optional[str] = None
    status: str = ThreadStatus.OPEN.value
    last_message_at: Optional[datetime] = None


class Message(BaseModel):
    id: Optional[str] = None
    tenant_id: Optional[str] = None
    thread_id: str
    sender_type: str
    sender_user_id: Optional[str] = None
    content: str = ""
    created_at: Optional[datetime] = None

    @property
    def is_from_agent(self) -> bool:
        return self.sender_type == SenderType.AI.value


class HandoffState(BaseModel):
    tenant_id: str
    thread_id: str
    is_handed_off: bool = False
    handed_off_at: Optional[datetime] = None
    handed_off_by: Optional[str] = None


# Request / Response Models

class SendMessageRequest(BaseModel):
    """Request model for sending a message from the inbox"""
    content: str = Field(..., min_length=1, max_length=10000, description="Message text")
    sender_user_id: Optional[str] = Field(None, description="Profile id of the sender")


class HandoffRequest(BaseModel):
    actor_id: Optional[str] = Field(None, description="Operator taking over the thread")
