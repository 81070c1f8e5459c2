"""
Message Router Service
Routes inbound WhatsApp messages to inbox threads, creating the contact's thread on first contact
"""
import logging
from typing import Dict, Any

from inbox_agent.models import (
    InboundMessage,
    WhatsAppConnection,
    WhatsAppThreadLink,
    ChannelType,
    ThreadStatus,
    SenderType,
)
from inbox_agent.services.inbox_service import InboxService
from inbox_agent.services.usage_service import UsageService
from inbox_agent.services.whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)


class MessageRouterService:
    """Service for routing incoming external messages to the correct thread"""

    def __init__(self, supabase):
        """
        Initialize Message Router Service

        Args:
            supabase: Supabase client instance
        """
        self.supabase = supabase
        self.inbox = InboxService(supabase)
        self.whatsapp = WhatsAppService(supabase)
        self.usage = UsageService(supabase)

    async def ensure_whatsapp_channel(self, tenant_id: str) -> str:
        """Get the tenant's whatsapp channel id, creating the channel if missing."""
        response = self.supabase.table("channels") \
            .select("id") \
            .eq("tenant_id", tenant_id) \
            .eq("type", ChannelType.WHATSAPP.value) \
            .limit(1) \
            .execute()

        if response.data:
            return response.data[0]["id"]

        created = self.supabase.table("channels") \
            .insert({
                "tenant_id": tenant_id,
                "type": ChannelType.WHATSAPP.value,
                "name": "WhatsApp",
                "is_active": True,
            }) \
            .execute()

        if not created.data:
            raise RuntimeError(f"Could not create WhatsApp channel for tenant {tenant_id}")
        logger.info(f"📡 WhatsApp channel created for tenant {tenant_id}")
        return created.data[0]["id"]

    async def _create_thread(self, tenant_id: str, channel_id: str, subject: str) -> str:
        response = self.supabase.table("threads") \
            .insert({
                "tenant_id": tenant_id,
                "channel_id": channel_id,
                "subject": subject,
                "status": ThreadStatus.OPEN.value,
            }) \
            .execute()

        if not response.data:
            raise RuntimeError("Thread insert returned no data")
        return response.data[0]["id"]

    async def _delete_thread(self, thread_id: str) -> None:
        try:
            self.supabase.table("threads").delete().eq("id", thread_id).execute()
        except Exception as e:
            logger.warning(f"⚠️ Could not remove orphan thread {thread_id}: {e}")

    async def resolve_thread(
        self,
        connection: WhatsAppConnection,
        inbound: InboundMessage
    ) -> WhatsAppThreadLink:
        """
        Find the thread linked to an external chat, or create it.

        A new contact gets a whatsapp-channel thread named after the contact
        and a link keyed by (tenant, connection, chat id). When two deliveries
        race on a first contact, the link written first wins and the other
        thread is removed.

        Returns:
            The stored contact link
        """
        tenant_id = connection.tenant_id
        link = await self.whatsapp.get_link(tenant_id, connection.id, inbound.external_chat_id)
        if link is not None:
            return link

        logger.info(f"🆕 New WhatsApp contact {inbound.contact_phone} on connection {connection.id}")
        channel_id = await self.ensure_whatsapp_channel(tenant_id)
        subject = inbound.display_name or inbound.contact_phone or f"WhatsApp {inbound.external_chat_id}"
        thread_id = await self._create_thread(tenant_id, channel_id, subject)

        stored = await self.whatsapp.upsert_link(WhatsAppThreadLink(
            tenant_id=tenant_id,
            connection_id=connection.id,
            wa_chat_id=inbound.external_chat_id,
            wa_contact_phone=inbound.contact_phone,
            wa_contact_name=inbound.display_name,
            thread_id=thread_id,
        ))

        if stored.thread_id != thread_id:
            logger.info(f"🔀 Contact {inbound.contact_phone} already linked to thread {stored.thread_id}")
            await self._delete_thread(thread_id)
            return stored

        try:
            await self.usage.increment_thread_usage(tenant_id)
        except Exception as e:
            logger.warning(f"⚠️ Thread usage not updated for tenant {tenant_id}: {e}")
        return stored

    async def route_incoming_message(
        self,
        connection: WhatsAppConnection,
        inbound: InboundMessage
    ) -> Dict[str, Any]:
        """
        Persist an inbound message on its contact's thread.

        Returns:
            Dict with tenant_id, thread_id and message_id
        """
        link = await self.resolve_thread(connection, inbound)
        message = await self.inbox.insert_message(
            link.tenant_id,
            link.thread_id,
            SenderType.EXTERNAL,
            inbound.render_content(),
        )
        await self.whatsapp.touch_link(link)

        try:
            await self.usage.increment_message_usage(link.tenant_id)
        except Exception as e:
            logger.warning(f"⚠️ Message usage not updated for tenant {link.tenant_id}: {e}")

        logger.info(f"📥 Inbound message {message.id} stored on thread {link.thread_id}")
        return {
            "tenant_id": link.tenant_id,
            "thread_id": link.thread_id,
            "message_id": message.id,
        }


def get_message_router_service(supabase) -> MessageRouterService:
    return MessageRouterService(supabase)
