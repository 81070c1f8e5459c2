"""
Channel Adapters
Per-channel delivery of agent replies and normalization of incoming payloads
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type
from pydantic import BaseModel

from inbox_agent.models import ChannelType
from inbox_agent.services.inbound_parser import parse_evolution_payload
from inbox_agent.services.whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)


class ChannelNotImplementedError(Exception):
    """Raised for channels that have no adapter implementation yet"""

    def __init__(self, channel_type: str):
        self.channel_type = channel_type
        super().__init__(f"Channel '{channel_type}' is not implemented")


class IncomingMessage(BaseModel):
    """Channel-independent incoming message"""
    content: str
    external_chat_id: Optional[str] = None
    display_name: Optional[str] = None
    raw: Optional[Any] = None


class ChannelAdapter(ABC):
    """
    Abstract base class for channel adapters.

    Persisting the reply in the thread is done by the caller before
    `send_outgoing_message`; adapters only handle delivery outside the
    inbox.
    """

    channel_type: ChannelType

    def __init__(self, supabase=None):
        self.supabase = supabase

    @abstractmethod
    async def send_outgoing_message(self, tenant_id: str, thread_id: str, content: str) -> None:
        pass

    @abstractmethod
    def normalize_incoming_message(self, payload: Any) -> IncomingMessage:
        pass


class InternalChannelAdapter(ChannelAdapter):
    """In-app inbox; the stored thread message is the delivery"""

    channel_type = ChannelType.INTERNAL

    async def send_outgoing_message(self, tenant_id: str, thread_id: str, content: str) -> None:
        logger.debug(f"Internal delivery for thread {thread_id} complete on persist")

    def normalize_incoming_message(self, payload: Any) -> IncomingMessage:
        content = payload.get("content") if isinstance(payload, dict) else payload
        return IncomingMessage(content=str(content or "").strip(), raw=payload)


class WhatsAppChannelAdapter(ChannelAdapter):
    """WhatsApp through the tenant's Evolution connection"""

    channel_type = ChannelType.WHATSAPP

    async def send_outgoing_message(self, tenant_id: str, thread_id: str, content: str) -> None:
        result = await WhatsAppService(self.supabase).try_send_outbound(tenant_id, thread_id, content)
        if result is not None and not result.ok:
            logger.warning(f"⚠️ WhatsApp delivery failed for thread {thread_id}: {result.error}")

    def normalize_incoming_message(self, payload: Any) -> IncomingMessage:
        inbound = parse_evolution_payload(payload)
        if inbound is None:
            raise ValueError("Payload is not a WhatsApp message")
        return IncomingMessage(
            content=inbound.render_content(),
            external_chat_id=inbound.external_chat_id,
            display_name=inbound.display_name,
            raw=payload,
        )


class _UnimplementedChannelAdapter(ChannelAdapter):

    async def send_outgoing_message(self, tenant_id: str, thread_id: str, content: str) -> None:
        raise ChannelNotImplementedError(self.channel_type.value)

    def normalize_incoming_message(self, payload: Any) -> IncomingMessage:
        raise ChannelNotImplementedError(self.channel_type.value)


class EmailChannelAdapter(_UnimplementedChannelAdapter):
    channel_type = ChannelType.EMAIL


class InstagramChannelAdapter(_UnimplementedChannelAdapter):
    channel_type = ChannelType.INSTAGRAM


_ADAPTERS: Dict[ChannelType, Type[ChannelAdapter]] = {
    ChannelType.INTERNAL: InternalChannelAdapter,
    ChannelType.WHATSAPP: WhatsAppChannelAdapter,
    ChannelType.EMAIL: EmailChannelAdapter,
    ChannelType.INSTAGRAM: InstagramChannelAdapter,
}


def get_channel_adapter(channel_type: str, supabase=None) -> ChannelAdapter:
    """
    Get the adapter for a channel type.

    Raises:
        ChannelNotImplementedError: Unknown channel type
    """
    try:
        adapter_class = _ADAPTERS[ChannelType(channel_type)]
    except ValueError:
        raise ChannelNotImplementedError(str(channel_type))
    return adapter_class(supabase)
