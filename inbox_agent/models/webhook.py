"""
Webhook Models
Canonical inbound message and webhook responses
"""
from pydantic import BaseModel, Field
from typing import Optional, List


MEDIA_KINDS = ("audio", "image", "video", "document")


class InboundMessage(BaseModel):
    """Provider-independent form of an inbound external message"""
    external_chat_id: str = Field(..., description="External chat id (e.g. 5511999999999@s.whatsapp.net)")
    display_name: Optional[str] = Field(None, description="Contact push name")
    text: Optional[str] = Field(None, description="Message text, if any")
    media_kinds: List[str] = Field(default_factory=list, description="Media kinds when no text")

    @property
    def contact_phone(self) -> str:
        return self.external_chat_id.split("@")[0] if "@" in self.external_chat_id else self.external_chat_id

    def render_content(self) -> str:
        """Text to persist in the inbox for this inbound message."""
        if self.text and self.text.strip():
            return self.text.strip()
        if self.media_kinds:
            return " ".join(f"[{kind}]" for kind in self.media_kinds)
        return "(empty message)"

    class Config:
        json_schema_extra = {
            "example": {
                "external_chat_id": "5511999999999@s.whatsapp.net",
                "display_name": "Maria",
                "text": "Hi, is the store open today?",
                "media_kinds": []
            }
        }


class WebhookAckResponse(BaseModel):
    """Webhook acknowledgement (always returned once authenticated)"""
    success: bool = True
    status: str = Field(default="received", description="received, ignored or error")
    thread_id: Optional[str] = None
