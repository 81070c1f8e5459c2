"""
Agent Service
Persistence for the tenant agent: configuration, behavior settings,
channel enablement, knowledge items and the activity log
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, List

from inbox_agent.models import (
    AgentConfiguration,
    AgentBehaviorSettings,
    KnowledgeItem,
    ActivityLogEntry,
    AgentUpsertRequest,
    AgentSettingsUpdateRequest,
    ChannelType,
    DEFAULT_AGENT_SETTINGS,
)

logger = logging.getLogger(__name__)

KNOWLEDGE_LIST_LIMIT = 50
ACTIVITY_LIST_LIMIT = 50


class AgentService:
    """Service for reading and editing the single agent of a tenant"""

    def __init__(self, supabase):
        """
        Initialize Agent Service

        Args:
            supabase: Supabase client instance
        """
        self.supabase = supabase

    # ============================================
    # AGENT CONFIGURATION
    # ============================================

    async def get_agent(self, tenant_id: str) -> Optional[AgentConfiguration]:
        """Get the tenant agent (the oldest row wins if several exist)."""
        response = await asyncio.to_thread(
            lambda: self.supabase.table("ai_agents")
            .select("*")
            .eq("tenant_id", tenant_id)
            .order("created_at")
            .limit(1)
            .execute()
        )

        if not response.data:
            return None
        return AgentConfiguration(**response.data[0])

    async def upsert_agent(self, tenant_id: str, data: AgentUpsertRequest) -> AgentConfiguration:
        """
        Create the tenant agent on first setup, otherwise edit it.

        Args:
            tenant_id: Tenant UUID
            data: Validated agent fields

        Returns:
            The stored agent
        """
        payload = {
            "name": data.name,
            "is_active": data.is_active,
            "system_prompt": data.system_prompt,
            "user_prompt": data.user_prompt or None,
        }

        existing = await self.get_agent(tenant_id)
        if existing:
            payload["updated_at"] = datetime.now(timezone.utc).isoformat()
            response = self.supabase.table("ai_agents") \
                .update(payload) \
                .eq("id", existing.id) \
                .execute()
            logger.info(f"✏️ Agent {existing.id} updated for tenant {tenant_id}")
        else:
            response = self.supabase.table("ai_agents") \
                .insert({**payload, "tenant_id": tenant_id}) \
                .execute()
            logger.info(f"✅ Agent created for tenant {tenant_id}")

        if not response.data:
            raise RuntimeError("Agent write returned no data")
        return AgentConfiguration(**response.data[0])

    # ============================================
    # CHANNEL ENABLEMENT
    # ============================================

    async def get_agent_channels(self, agent_id: str) -> Dict[str, bool]:
        """Map of channel type to enablement; unknown channels are disabled."""
        response = await asyncio.to_thread(
            lambda: self.supabase.table("ai_agent_channels")
            .select("channel_type, is_enabled")
            .eq("agent_id", agent_id)
            .execute()
        )

        channels = {channel.value: False for channel in ChannelType}
        for row in response.data or []:
            channels[row["channel_type"]] = bool(row.get("is_enabled"))
        return channels

    async def set_channel_enabled(
        self,
        tenant_id: str,
        agent_id: str,
        channel_type: ChannelType,
        is_enabled: bool
    ) -> Dict[str, bool]:
        self.supabase.table("ai_agent_channels") \
            .upsert(
                {
                    "tenant_id": tenant_id,
                    "agent_id": agent_id,
                    "channel_type": channel_type.value,
                    "is_enabled": is_enabled,
                },
                on_conflict="agent_id,channel_type"
            ) \
            .execute()
        logger.info(f"🔀 Agent {agent_id} channel {channel_type.value} enabled={is_enabled}")
        return await self.get_agent_channels(agent_id)

    # ============================================
    # BEHAVIOR SETTINGS
    # ============================================

    async def get_agent_settings(self, tenant_id: str, agent_id: str) -> AgentBehaviorSettings:
        """
        Get behavior settings, creating the default row on first read.

        When the default row cannot be written the defaults are still
        returned so the caller can proceed.
        """
        response = await asyncio.to_thread(
            lambda: self.supabase.table("ai_agent_settings")
            .select("*")
            .eq("agent_id", agent_id)
            .limit(1)
            .execute()
        )

        if response.data:
            return AgentBehaviorSettings(**response.data[0])

        defaults = {"tenant_id": tenant_id, "agent_id": agent_id, **DEFAULT_AGENT_SETTINGS}
        try:
            created = self.supabase.table("ai_agent_settings").insert(defaults).execute()
            if created.data:
                logger.info(f"⚙️ Default settings created for agent {agent_id}")
                return AgentBehaviorSettings(**created.data[0])
        except Exception as e:
            logger.warning(f"⚠️ Could not persist default settings for agent {agent_id}: {e}")

        return AgentBehaviorSettings(**defaults)

    async def update_settings(
        self,
        tenant_id: str,
        agent_id: str,
        data: AgentSettingsUpdateRequest
    ) -> AgentBehaviorSettings:
        current = await self.get_agent_settings(tenant_id, agent_id)
        changes = data.model_dump(exclude_none=True)
        if not changes:
            return current

        response = self.supabase.table("ai_agent_settings") \
            .update(changes) \
            .eq("agent_id", agent_id) \
            .execute()

        if response.data:
            return AgentBehaviorSettings(**response.data[0])
        return current.model_copy(update=changes)

    # ============================================
    # KNOWLEDGE
    # ============================================

    async def list_knowledge(self, agent_id: str, limit: int = KNOWLEDGE_LIST_LIMIT) -> List[KnowledgeItem]:
        """Knowledge items for the agent, most recent first."""
        response = await asyncio.to_thread(
            lambda: self.supabase.table("ai_agent_knowledge")
            .select("*")
            .eq("agent_id", agent_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [KnowledgeItem(**row) for row in response.data or []]

    # ============================================
    # ACTIVITY LOG
    # ============================================

    async def insert_activity_log(self, entry: ActivityLogEntry) -> None:
        payload = entry.model_dump(exclude_none=True, mode="json")
        payload.setdefault("responded_at", datetime.now(timezone.utc).isoformat())
        self.supabase.table("agent_activity_logs").insert(payload).execute()

    async def list_activity_logs(self, tenant_id: str, limit: int = ACTIVITY_LIST_LIMIT) -> List[ActivityLogEntry]:
        response = self.supabase.table("agent_activity_logs") \
            .select("*") \
            .eq("tenant_id", tenant_id) \
            .order("responded_at", desc=True) \
            .limit(limit) \
            .execute()
        return [ActivityLogEntry(**row) for row in response.data or []]

    async def mark_latest_interrupted(self, tenant_id: str, thread_id: str) -> bool:
        """Flag the most recent activity entry of a thread as interrupted by a handoff."""
        response = self.supabase.table("agent_activity_logs") \
            .select("id") \
            .eq("tenant_id", tenant_id) \
            .eq("thread_id", thread_id) \
            .order("responded_at", desc=True) \
            .limit(1) \
            .execute()

        if not response.data:
            return False

        self.supabase.table("agent_activity_logs") \
            .update({"interrupted_by_handoff": True}) \
            .eq("id", response.data[0]["id"]) \
            .execute()
        return True
