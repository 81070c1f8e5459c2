"""
WhatsApp Models
Pydantic models for WhatsApp connections, contact links and outbound sends
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class WhatsAppConnection(BaseModel):
    """Tenant connection to an Evolution API instance"""
    id: str
    tenant_id: str
    provider: str = Field(default="evolution", description="Payload format: evolution or mock")
    name: str = "WhatsApp"
    is_active: bool = False
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    instance_name: str = ""
    phone_number: Optional[str] = None
    webhook_secret: Optional[str] = None


class WhatsAppThreadLink(BaseModel):
    """Durable mapping from an external chat id to an inbox thread"""
    id: Optional[str] = None
    tenant_id: str
    connection_id: str
    wa_chat_id: str
    wa_contact_phone: str = ""
    wa_contact_name: Optional[str] = None
    thread_id: str
    last_message_at: Optional[datetime] = None


class SendResult(BaseModel):
    """Outcome of an outbound send to the external network"""
    ok: bool = Field(..., description="Whether the provider accepted the message")
    external_id: Optional[str] = Field(None, description="Provider message id")
    error: Optional[str] = Field(None, description="Status and truncated body on failure")
