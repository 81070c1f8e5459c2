"""
WhatsApp Service
WhatsApp connections, external contact links and outbound delivery
"""
import logging
import httpx
from datetime import datetime, timezone
from typing import Optional, List

from inbox_agent.config import settings
from inbox_agent.models import WhatsAppConnection, WhatsAppThreadLink, SendResult
from inbox_agent.services.evolution_client import EvolutionClient

logger = logging.getLogger(__name__)

LINK_CONFLICT_KEY = "tenant_id,connection_id,wa_chat_id"


class WhatsAppService:
    """Service for WhatsApp connection lookups and outbound sends"""

    def __init__(self, supabase, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize WhatsApp Service

        Args:
            supabase: Supabase client instance
            transport: Optional httpx transport passed to the Evolution client
        """
        self.supabase = supabase
        self._transport = transport

    # ============================================
    # CONNECTIONS
    # ============================================

    async def get_connection(self, connection_id: str) -> Optional[WhatsAppConnection]:
        response = self.supabase.table("whatsapp_connections") \
            .select("*") \
            .eq("id", connection_id) \
            .limit(1) \
            .execute()
        return WhatsAppConnection(**response.data[0]) if response.data else None

    async def get_connection_by_secret(self, secret: str) -> Optional[WhatsAppConnection]:
        response = self.supabase.table("whatsapp_connections") \
            .select("*") \
            .eq("webhook_secret", secret) \
            .limit(1) \
            .execute()
        return WhatsAppConnection(**response.data[0]) if response.data else None

    async def list_connections(self, limit: int = 2) -> List[WhatsAppConnection]:
        response = self.supabase.table("whatsapp_connections") \
            .select("*") \
            .limit(limit) \
            .execute()
        return [WhatsAppConnection(**row) for row in response.data or []]

    # ============================================
    # CONTACT LINKS
    # ============================================

    async def get_link(self, tenant_id: str, connection_id: str, wa_chat_id: str) -> Optional[WhatsAppThreadLink]:
        response = self.supabase.table("whatsapp_thread_links") \
            .select("*") \
            .eq("tenant_id", tenant_id) \
            .eq("connection_id", connection_id) \
            .eq("wa_chat_id", wa_chat_id) \
            .limit(1) \
            .execute()
        return WhatsAppThreadLink(**response.data[0]) if response.data else None

    async def get_link_for_thread(self, thread_id: str) -> Optional[WhatsAppThreadLink]:
        response = self.supabase.table("whatsapp_thread_links") \
            .select("*") \
            .eq("thread_id", thread_id) \
            .limit(1) \
            .execute()
        return WhatsAppThreadLink(**response.data[0]) if response.data else None

    async def upsert_link(self, link: WhatsAppThreadLink) -> WhatsAppThreadLink:
        """
        Insert a link unless one already exists for its natural key.

        Returns the stored link, which belongs to whichever writer got there
        first.
        """
        payload = link.model_dump(exclude_none=True, mode="json")
        self.supabase.table("whatsapp_thread_links") \
            .upsert(payload, on_conflict=LINK_CONFLICT_KEY, ignore_duplicates=True) \
            .execute()

        stored = await self.get_link(link.tenant_id, link.connection_id, link.wa_chat_id)
        if stored is None:
            raise RuntimeError(f"Contact link for {link.wa_chat_id} missing after upsert")
        return stored

    async def touch_link(self, link: WhatsAppThreadLink, at: Optional[str] = None) -> None:
        self.supabase.table("whatsapp_thread_links") \
            .update({"last_message_at": at or datetime.now(timezone.utc).isoformat()}) \
            .eq("tenant_id", link.tenant_id) \
            .eq("connection_id", link.connection_id) \
            .eq("wa_chat_id", link.wa_chat_id) \
            .execute()

    # ============================================
    # OUTBOUND
    # ============================================

    async def try_send_outbound(self, tenant_id: str, thread_id: str, content: str) -> Optional[SendResult]:
        """
        Deliver an automated message to the thread's WhatsApp contact.

        Returns None when outbound delivery is disabled or the thread has no
        usable connection, otherwise the send result. Never raises for
        network failures.
        """
        if not settings.ENABLE_WHATSAPP_OUTBOUND:
            logger.debug(f"WhatsApp outbound disabled, skipping thread {thread_id}")
            return None

        link = await self.get_link_for_thread(thread_id)
        if link is None or link.tenant_id != tenant_id:
            logger.warning(f"⚠️ No WhatsApp contact link for thread {thread_id}")
            return None

        connection = await self.get_connection(link.connection_id)
        if connection is None:
            logger.warning(f"⚠️ WhatsApp connection {link.connection_id} not found")
            return None
        if connection.provider != "evolution":
            logger.info(f"📭 Connection {connection.id} uses provider '{connection.provider}', nothing to send")
            return None

        base_url = connection.base_url or settings.EVOLUTION_BASE_URL
        api_key = connection.api_key or settings.EVOLUTION_API_KEY
        if not base_url or not api_key or not connection.instance_name:
            logger.warning(f"⚠️ Evolution credentials incomplete for connection {connection.id}")
            return SendResult(ok=False, error="missing_credentials")

        client = EvolutionClient(base_url, api_key, transport=self._transport)
        try:
            result = await client.send_text_message(connection.instance_name, link.wa_chat_id, content)
        except httpx.HTTPError as e:
            logger.error(f"❌ Evolution request failed for thread {thread_id}: {e}")
            return SendResult(ok=False, error=str(e)[:200])

        if result.ok:
            logger.info(f"📤 WhatsApp message sent for thread {thread_id} (id={result.external_id})")
        return result
