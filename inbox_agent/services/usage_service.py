"""
Usage Service
Monthly plan quota checks and usage counters per tenant
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Dict

from inbox_agent.config import settings

logger = logging.getLogger(__name__)


def current_period(now: Optional[datetime] = None) -> str:
    """Billing period key, e.g. 2025-03."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m")


class UsageService:
    """Service for plan limits backed by the usage_counters table"""

    def __init__(self, supabase):
        self.supabase = supabase

    async def get_usage(self, tenant_id: str, period: Optional[str] = None) -> Dict[str, int]:
        period = period or current_period()
        response = await asyncio.to_thread(
            lambda: self.supabase.table("usage_counters")
            .select("*")
            .eq("tenant_id", tenant_id)
            .eq("period", period)
            .limit(1)
            .execute()
        )

        row = response.data[0] if response.data else {}
        return {
            "messages_count": int(row.get("messages_count") or 0),
            "ai_messages_count": int(row.get("ai_messages_count") or 0),
            "threads_count": int(row.get("threads_count") or 0),
        }

    async def can_agent_respond(self, tenant_id: str) -> bool:
        usage = await self.get_usage(tenant_id)
        allowed = usage["ai_messages_count"] < settings.PLAN_AI_RESPONSES_PER_MONTH
        if not allowed:
            logger.warning(f"📉 AI response quota exhausted for tenant {tenant_id}")
        return allowed

    async def can_send_message(self, tenant_id: str) -> bool:
        usage = await self.get_usage(tenant_id)
        return usage["messages_count"] < settings.PLAN_MESSAGES_PER_MONTH

    async def can_create_thread(self, tenant_id: str) -> bool:
        usage = await self.get_usage(tenant_id)
        return usage["threads_count"] < settings.PLAN_THREADS_PER_MONTH

    async def increment(
        self,
        tenant_id: str,
        messages: int = 0,
        ai_messages: int = 0,
        threads: int = 0
    ) -> None:
        """
        Add to the current period's counters through the increment RPC.

        Raises whatever the RPC raises; callers decide whether it is fatal.
        """
        self.supabase.rpc(
            "increment_usage_counters",
            {
                "_tenant_id": tenant_id,
                "_period": current_period(),
                "_messages_delta": messages,
                "_ai_messages_delta": ai_messages,
                "_threads_delta": threads,
            }
        ).execute()

    async def increment_message_usage(self, tenant_id: str) -> None:
        await self.increment(tenant_id, messages=1)

    async def increment_ai_usage(self, tenant_id: str) -> None:
        await self.increment(tenant_id, ai_messages=1)

    async def increment_thread_usage(self, tenant_id: str) -> None:
        await self.increment(tenant_id, threads=1)
