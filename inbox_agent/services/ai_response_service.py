"""
AI Response Service
Orchestrates an automated agent run on a thread, from eligibility to paced delivery
"""
import logging
import asyncio
from typing import Dict, Any, List, Optional, Tuple

from inbox_agent.agents.agent_engine import should_agent_respond, generate_agent_reply, AgentContext
from inbox_agent.agents.channel_adapters import get_channel_adapter, ChannelNotImplementedError
from inbox_agent.config import settings
from inbox_agent.models import (
    ActivityLogEntry,
    AgentBehaviorSettings,
    AgentConfiguration,
    ChannelType,
    KnowledgeItem,
    Message,
    Thread,
    ThreadStatus,
)
from inbox_agent.services.agent_service import AgentService
from inbox_agent.services.ai_provider import AIProvider, MissingCredentialError, UpstreamError, get_ai_provider
from inbox_agent.services.inbox_service import InboxService
from inbox_agent.services.thread_lease import ActiveRunRegistry, ThreadLeaseRegistry, active_runs, thread_leases
from inbox_agent.services.usage_service import UsageService
from inbox_agent.utils.chunking import chunk_reply

logger = logging.getLogger(__name__)

MEDIA_PLACEHOLDERS = ("[audio]", "[image]")
MEDIA_APOLOGY = (
    "For now I can only read text messages. Please describe the audio or image "
    "in text so I can help you."
)
SUMMARY_MAX_CHARS = 50
TYPING_DELAY_MIN_MS = 250
TYPING_DELAY_MAX_MS = 1200
TYPING_MS_PER_CHAR = 8


def typing_delay_ms(chunk_length: int, typing_simulation: bool) -> int:
    if not typing_simulation:
        return 0
    return min(TYPING_DELAY_MAX_MS, max(TYPING_DELAY_MIN_MS, int(chunk_length * TYPING_MS_PER_CHAR)))


def should_stop_chunked_send(is_handed_off: bool, thread_status: Optional[str]) -> bool:
    """A fragment must not be delivered once a human took over or the thread is gone or closed."""
    return is_handed_off or thread_status is None or thread_status == ThreadStatus.CLOSED.value


def summarize_reply(text: str) -> str:
    if len(text) <= SUMMARY_MAX_CHARS:
        return text
    return f"{text[:SUMMARY_MAX_CHARS - 3].strip()}…"


def count_trailing_agent_messages(messages: List[Message]) -> int:
    count = 0
    for message in reversed(messages):
        if not message.is_from_agent:
            break
        count += 1
    return count


async def _delay(ms: int) -> None:
    if ms > 0:
        await asyncio.sleep(ms / 1000)


class AIResponseService:
    """
    Service for running the automated agent on a thread.

    Flow:
    1. Load thread, agent, handoff and history concurrently
    2. Check the eligibility gate, plan quota and provider credential
    3. Load behavior settings and knowledge, enforce the consecutive reply cap
    4. Generate one reply (or the media apology)
    5. Chunk and deliver with pacing, re-checking handoff and thread status
    6. Record one activity log entry
    """

    def __init__(
        self,
        supabase,
        provider: Optional[AIProvider] = None,
        runs: Optional[ActiveRunRegistry] = None
    ):
        """
        Initialize AI Response Service

        Args:
            supabase: Supabase client instance
            provider: Text generation provider (defaults to the configured OpenAI provider)
            runs: Registry marking threads while a reply is generated and delivered
        """
        self.supabase = supabase
        self.provider = provider
        self.runs = runs or active_runs
        self.inbox = InboxService(supabase, runs=self.runs)
        self.agents = AgentService(supabase)
        self.usage = UsageService(supabase)

    def _resolve_provider(self) -> Optional[AIProvider]:
        if self.provider is not None:
            return self.provider
        if not settings.is_configured:
            return None
        return get_ai_provider()

    async def _delivery_state(self, tenant_id: str, thread_id: str) -> Tuple[bool, Optional[str]]:
        handed_off, status = await asyncio.gather(
            self.inbox.is_handed_off(thread_id),
            self.inbox.get_thread_status(tenant_id, thread_id),
        )
        return handed_off, status

    async def _record_usage(self, tenant_id: str) -> None:
        # Each counter is best effort on its own
        try:
            await self.usage.increment_ai_usage(tenant_id)
        except Exception as e:
            logger.warning(f"⚠️ AI usage counter not updated for tenant {tenant_id}: {e}")
        try:
            await self.usage.increment_message_usage(tenant_id)
        except Exception as e:
            logger.warning(f"⚠️ Message usage counter not updated for tenant {tenant_id}: {e}")

    async def _deliver_external(self, tenant_id: str, thread_id: str, channel_type: str, content: str) -> None:
        try:
            adapter = get_channel_adapter(channel_type, self.supabase)
            await adapter.send_outgoing_message(tenant_id, thread_id, content)
        except ChannelNotImplementedError as e:
            logger.warning(f"⚠️ No delivery for thread {thread_id}: {e}")
        except Exception as e:
            logger.error(f"❌ Delivery failed for thread {thread_id} on {channel_type}: {e}")

    async def _persist_fragment(self, tenant_id: str, thread_id: str, channel_type: str, content: str) -> None:
        await self.inbox.insert_ai_message(tenant_id, thread_id, content)
        await self._record_usage(tenant_id)
        await self._deliver_external(tenant_id, thread_id, channel_type, content)

    async def _write_activity_log(self, entry: ActivityLogEntry) -> None:
        try:
            await self.agents.insert_activity_log(entry)
        except Exception as e:
            logger.warning(f"⚠️ Activity log not written for thread {entry.thread_id}: {e}")

    async def run_agent(self, tenant_id: str, thread_id: str) -> Dict[str, Any]:
        """
        Run the agent once on a thread.

        Args:
            tenant_id: Tenant UUID
            thread_id: Thread UUID

        Returns:
            Result dict with `success`, and `reason` when nothing was sent
        """
        try:
            return await self._run(tenant_id, thread_id)
        except Exception as e:
            logger.error(f"❌ Agent run failed for thread {thread_id}: {e}", exc_info=True)
            return {"success": False, "reason": "processing_error", "error": str(e)}

    async def _run(self, tenant_id: str, thread_id: str) -> Dict[str, Any]:
        thread, agent, handoff, messages = await asyncio.gather(
            self.inbox.get_thread(tenant_id, thread_id),
            self.agents.get_agent(tenant_id),
            self.inbox.get_handoff(thread_id),
            self.inbox.get_thread_messages(thread_id),
        )

        if thread is None:
            return {"success": False, "reason": "thread_not_found"}
        if agent is None:
            return {"success": False, "reason": "agent_not_found"}

        channels = await self.agents.get_agent_channels(agent.id)
        last_message = messages[-1] if messages else None

        eligible = should_agent_respond(
            thread_status=thread.status,
            channel_type=thread.channel_type,
            agent_active=agent.is_active,
            internal_enabled=channels.get(ChannelType.INTERNAL.value, False),
            whatsapp_enabled=channels.get(ChannelType.WHATSAPP.value, False),
            is_handed_off=bool(handoff and handoff.is_handed_off),
            last_message_from_agent=bool(last_message and last_message.is_from_agent),
        )
        if not eligible:
            logger.debug(f"Agent not eligible for thread {thread_id}")
            return {"success": False, "reason": "not_eligible"}

        if not await self.usage.can_agent_respond(tenant_id):
            return {"success": False, "reason": "quota_exhausted"}

        provider = self._resolve_provider()
        if provider is None:
            logger.warning("⚠️ OPENAI_API_KEY not configured, agent skipped")
            return {"success": False, "reason": "missing_credential"}

        behavior, knowledge = await asyncio.gather(
            self.agents.get_agent_settings(tenant_id, agent.id),
            self.agents.list_knowledge(agent.id),
        )

        trailing = count_trailing_agent_messages(messages)
        if trailing >= behavior.max_consecutive_replies:
            logger.info(f"🔁 Thread {thread_id} reached {trailing} consecutive agent replies")
            return {"success": False, "reason": "max_consecutive_replies"}

        async with self.runs.track(thread_id):
            return await self._reply(tenant_id, thread, agent, behavior, knowledge, messages, provider)

    async def _reply(
        self,
        tenant_id: str,
        thread: Thread,
        agent: AgentConfiguration,
        behavior: AgentBehaviorSettings,
        knowledge: List[KnowledgeItem],
        messages: List[Message],
        provider: AIProvider
    ) -> Dict[str, Any]:
        thread_id = thread.id
        last_message = messages[-1] if messages else None
        last_content = (last_message.content if last_message else "").strip()
        if last_content in MEDIA_PLACEHOLDERS:
            reply = MEDIA_APOLOGY
        else:
            context = AgentContext(agent=agent, settings=behavior, knowledge=knowledge, messages=messages)
            try:
                reply = await generate_agent_reply(context, provider)
            except MissingCredentialError:
                return {"success": False, "reason": "missing_credential"}
            except UpstreamError as e:
                logger.error(f"❌ Provider error for thread {thread_id}: {e}")
                return {"success": False, "reason": "upstream_error", "error": str(e)}

        if not reply or not reply.strip():
            return {"success": False, "reason": "empty_reply"}

        chunks = chunk_reply(reply, behavior.max_chunks) if behavior.use_chunked_messages else [reply]
        logger.info(
            f"💬 Agent replying on thread {thread_id}: {len(chunks)} fragment(s), "
            f"delay={behavior.response_delay_ms}ms, channel={thread.channel_type}"
        )

        sent = 0
        interrupted = False
        if behavior.use_chunked_messages and len(chunks) > 1:
            for index, chunk in enumerate(chunks):
                handed_off, status = await self._delivery_state(tenant_id, thread_id)
                if should_stop_chunked_send(handed_off, status):
                    interrupted = handed_off
                    break

                base_delay = behavior.response_delay_ms if index == 0 else 0
                await _delay(base_delay + typing_delay_ms(len(chunk), behavior.typing_simulation))

                handed_off, status = await self._delivery_state(tenant_id, thread_id)
                if should_stop_chunked_send(handed_off, status):
                    interrupted = handed_off
                    break

                await self._persist_fragment(tenant_id, thread_id, thread.channel_type, chunk)
                sent += 1
        else:
            await _delay(behavior.response_delay_ms)
            await self._persist_fragment(tenant_id, thread_id, thread.channel_type, reply)
            sent = 1

        if interrupted:
            logger.info(f"🛑 Delivery stopped on thread {thread_id} after {sent}/{len(chunks)} fragment(s)")

        await self._write_activity_log(ActivityLogEntry(
            tenant_id=tenant_id,
            thread_id=thread_id,
            channel_type=thread.channel_type,
            content_summary=summarize_reply(reply),
            interrupted_by_handoff=interrupted,
        ))

        return {
            "success": True,
            "fragments_sent": sent,
            "fragments_total": len(chunks),
            "interrupted_by_handoff": interrupted,
        }


async def maybe_run_agent(
    tenant_id: str,
    thread_id: str,
    supabase,
    leases: Optional[ThreadLeaseRegistry] = None,
    provider: Optional[AIProvider] = None
) -> Dict[str, Any]:
    """
    Run the agent after a local send, at most once at a time per thread.

    Skipped while another run holds the thread's lease or during the
    cooldown that follows a run start.
    """
    registry = leases or thread_leases
    async with registry.hold(thread_id) as lease:
        if lease is None:
            return {"success": False, "reason": "busy"}
        return await AIResponseService(supabase, provider=provider).run_agent(tenant_id, thread_id)


async def run_agent_after_inbound(
    tenant_id: str,
    thread_id: str,
    supabase,
    provider: Optional[AIProvider] = None
) -> Dict[str, Any]:
    """
    Run the agent after an inbound webhook message.

    Not lease guarded; duplicate runs converge through the gate's
    last-message check.
    """
    logger.info(f"🔄 Agent run after inbound message on thread {thread_id}")
    result = await AIResponseService(supabase, provider=provider).run_agent(tenant_id, thread_id)
    if result["success"]:
        logger.info(f"✅ Agent run finished for thread {thread_id}: {result.get('fragments_sent')} sent")
    else:
        logger.info(f"⏭️ Agent run skipped for thread {thread_id}: reason={result.get('reason')}")
    return result
