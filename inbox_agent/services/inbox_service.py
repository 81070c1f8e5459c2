"""
Inbox Service
Threads, messages and human handoff state
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, List

from inbox_agent.models import (
    Thread,
    Message,
    HandoffState,
    ThreadStatus,
    SenderType,
)
from inbox_agent.services.agent_service import AgentService
from inbox_agent.services.thread_lease import ActiveRunRegistry, active_runs

logger = logging.getLogger(__name__)

MESSAGE_HISTORY_LIMIT = 50


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InboxService:
    """Service for thread and message persistence"""

    def __init__(self, supabase, runs: Optional[ActiveRunRegistry] = None):
        """
        Initialize Inbox Service

        Args:
            supabase: Supabase client instance
            runs: Registry used to detect an agent reply in flight on the thread
        """
        self.supabase = supabase
        self.runs = runs or active_runs

    # ============================================
    # THREADS
    # ============================================

    async def get_thread(self, tenant_id: str, thread_id: str) -> Optional[Thread]:
        """Get a tenant thread with its channel type resolved."""
        response = await asyncio.to_thread(
            lambda: self.supabase.table("threads")
            .select("*")
            .eq("id", thread_id)
            .eq("tenant_id", tenant_id)
            .limit(1)
            .execute()
        )

        if not response.data:
            return None

        thread = response.data[0]
        channel_type = ""
        if thread.get("channel_id"):
            channel = await asyncio.to_thread(
                lambda: self.supabase.table("channels")
                .select("type")
                .eq("id", thread["channel_id"])
                .limit(1)
                .execute()
            )
            if channel.data:
                channel_type = channel.data[0].get("type") or ""

        return Thread(**{**thread, "channel_type": channel_type})

    async def get_thread_status(self, tenant_id: str, thread_id: str) -> Optional[str]:
        response = await asyncio.to_thread(
            lambda: self.supabase.table("threads")
            .select("status")
            .eq("id", thread_id)
            .eq("tenant_id", tenant_id)
            .limit(1)
            .execute()
        )
        return response.data[0].get("status") if response.data else None

    async def set_thread_status(self, tenant_id: str, thread_id: str, status: ThreadStatus) -> Optional[Thread]:
        response = self.supabase.table("threads") \
            .update({"status": status.value}) \
            .eq("id", thread_id) \
            .eq("tenant_id", tenant_id) \
            .execute()

        if not response.data:
            return None
        logger.info(f"📂 Thread {thread_id} status -> {status.value}")
        return await self.get_thread(tenant_id, thread_id)

    async def touch_thread(self, thread_id: str, at: Optional[str] = None) -> None:
        self.supabase.table("threads") \
            .update({"last_message_at": at or _now_iso()}) \
            .eq("id", thread_id) \
            .execute()

    # ============================================
    # MESSAGES
    # ============================================

    async def get_thread_messages(self, thread_id: str, limit: int = MESSAGE_HISTORY_LIMIT) -> List[Message]:
        """Most recent messages of a thread, oldest first."""
        response = await asyncio.to_thread(
            lambda: self.supabase.table("messages")
            .select("*")
            .eq("thread_id", thread_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [Message(**row) for row in reversed(response.data or [])]

    async def insert_message(
        self,
        tenant_id: str,
        thread_id: str,
        sender_type: SenderType,
        content: str,
        sender_user_id: Optional[str] = None
    ) -> Message:
        """
        Append a message to a thread and bump the thread's last activity.

        Returns:
            The stored message
        """
        payload = {
            "tenant_id": tenant_id,
            "thread_id": thread_id,
            "sender_type": sender_type.value,
            "sender_user_id": sender_user_id,
            "content": content,
        }
        response = self.supabase.table("messages").insert(payload).execute()
        if not response.data:
            raise RuntimeError("Message insert returned no data")

        message = Message(**response.data[0])
        await self.touch_thread(thread_id)
        return message

    async def insert_ai_message(self, tenant_id: str, thread_id: str, content: str) -> Message:
        return await self.insert_message(tenant_id, thread_id, SenderType.AI, content)

    async def send_message(
        self,
        tenant_id: str,
        thread_id: str,
        content: str,
        sender_user_id: Optional[str] = None
    ) -> Message:
        """
        Store a message typed by a local user.

        If the agent is mid-run on this thread the sender takes over: the
        thread is handed off so remaining reply fragments are not delivered.
        """
        message = await self.insert_message(
            tenant_id, thread_id, SenderType.USER, content, sender_user_id=sender_user_id
        )

        if self.runs.is_replying(thread_id):
            logger.info(f"🙋 User wrote while agent was replying on thread {thread_id}, handing off")
            await self.set_handoff(tenant_id, thread_id, True, actor_id=sender_user_id)

        return message

    # ============================================
    # HANDOFF
    # ============================================

    async def get_handoff(self, thread_id: str) -> Optional[HandoffState]:
        response = await asyncio.to_thread(
            lambda: self.supabase.table("thread_handoffs")
            .select("*")
            .eq("thread_id", thread_id)
            .limit(1)
            .execute()
        )
        return HandoffState(**response.data[0]) if response.data else None

    async def is_handed_off(self, thread_id: str) -> bool:
        handoff = await self.get_handoff(thread_id)
        return bool(handoff and handoff.is_handed_off)

    async def set_handoff(
        self,
        tenant_id: str,
        thread_id: str,
        is_handed_off: bool,
        actor_id: Optional[str] = None
    ) -> HandoffState:
        """
        Turn human handoff on or off for a thread.

        Turning it on also flags the thread's latest agent activity as
        interrupted.
        """
        payload = {
            "tenant_id": tenant_id,
            "thread_id": thread_id,
            "is_handed_off": is_handed_off,
            "handed_off_at": _now_iso() if is_handed_off else None,
            "handed_off_by": actor_id if is_handed_off else None,
        }
        response = self.supabase.table("thread_handoffs") \
            .upsert(payload, on_conflict="thread_id") \
            .execute()

        if is_handed_off:
            logger.info(f"🤝 Thread {thread_id} handed off to a human (by {actor_id})")
            try:
                await AgentService(self.supabase).mark_latest_interrupted(tenant_id, thread_id)
            except Exception as e:
                logger.warning(f"⚠️ Could not flag activity as interrupted for thread {thread_id}: {e}")
        else:
            logger.info(f"🤖 Thread {thread_id} returned to the agent")

        row = response.data[0] if response.data else payload
        return HandoffState(**row)
