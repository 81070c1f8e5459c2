"""
Thread API Endpoints
Local inbox actions: sending messages, handoff and thread status
"""
from fastapi import APIRouter, HTTPException, Depends, status
from typing import Optional
import logging

from inbox_agent.models import (
    Thread,
    Message,
    HandoffState,
    ThreadStatus,
    SendMessageRequest,
    HandoffRequest,
)
from inbox_agent.services.ai_response_service import maybe_run_agent
from inbox_agent.services.inbox_service import InboxService
from inbox_agent.services.supabase_client import get_supabase_client
from inbox_agent.services.usage_service import UsageService
from inbox_agent.utils.background import spawn_detached

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tenants/{tenant_id}/threads", tags=["threads"])


async def _require_thread(inbox: InboxService, tenant_id: str, thread_id: str) -> Thread:
    thread = await inbox.get_thread(tenant_id, thread_id)
    if thread is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Thread {thread_id} not found"
        )
    return thread


@router.post(
    "/{thread_id}/messages",
    response_model=Message,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
    description="Stores a user message and triggers the agent for the thread in the background"
)
async def send_message(
    tenant_id: str,
    thread_id: str,
    data: SendMessageRequest,
    supabase=Depends(get_supabase_client)
):
    inbox = InboxService(supabase)
    await _require_thread(inbox, tenant_id, thread_id)

    usage = UsageService(supabase)
    if not await usage.can_send_message(tenant_id):
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail="Monthly message limit reached"
        )

    message = await inbox.send_message(tenant_id, thread_id, data.content, sender_user_id=data.sender_user_id)

    try:
        await usage.increment_message_usage(tenant_id)
    except Exception as e:
        logger.warning(f"⚠️ Message usage not updated for tenant {tenant_id}: {e}")

    spawn_detached(
        maybe_run_agent(tenant_id, thread_id, supabase),
        name=f"agent-local-{thread_id}"
    )
    return message


async def _set_handoff(
    supabase,
    tenant_id: str,
    thread_id: str,
    is_handed_off: bool,
    actor_id: Optional[str]
) -> HandoffState:
    inbox = InboxService(supabase)
    await _require_thread(inbox, tenant_id, thread_id)
    return await inbox.set_handoff(tenant_id, thread_id, is_handed_off, actor_id=actor_id)


@router.post(
    "/{thread_id}/handoff",
    response_model=HandoffState,
    summary="Hand the thread off to a human"
)
async def start_handoff(
    tenant_id: str,
    thread_id: str,
    data: Optional[HandoffRequest] = None,
    supabase=Depends(get_supabase_client)
):
    actor_id = data.actor_id if data else None
    return await _set_handoff(supabase, tenant_id, thread_id, True, actor_id)


@router.delete(
    "/{thread_id}/handoff",
    response_model=HandoffState,
    summary="Return the thread to the agent"
)
async def end_handoff(tenant_id: str, thread_id: str, supabase=Depends(get_supabase_client)):
    return await _set_handoff(supabase, tenant_id, thread_id, False, None)


async def _set_status(supabase, tenant_id: str, thread_id: str, thread_status: ThreadStatus) -> Thread:
    inbox = InboxService(supabase)
    await _require_thread(inbox, tenant_id, thread_id)
    thread = await inbox.set_thread_status(tenant_id, thread_id, thread_status)
    if thread is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update thread status"
        )
    return thread


@router.post("/{thread_id}/close", response_model=Thread, summary="Close a thread")
async def close_thread(tenant_id: str, thread_id: str, supabase=Depends(get_supabase_client)):
    return await _set_status(supabase, tenant_id, thread_id, ThreadStatus.CLOSED)


@router.post("/{thread_id}/reopen", response_model=Thread, summary="Reopen a thread")
async def reopen_thread(tenant_id: str, thread_id: str, supabase=Depends(get_supabase_client)):
    return await _set_status(supabase, tenant_id, thread_id, ThreadStatus.OPEN)
