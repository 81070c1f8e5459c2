"""
Agent API Endpoints

Tenant-scoped configuration of the automated agent: agent record,
behavior settings, channel enablement, knowledge and activity log.
"""
from fastapi import APIRouter, HTTPException, Depends, Query, status
from typing import List, Dict
import logging

from inbox_agent.models import (
    AgentConfiguration,
    AgentBehaviorSettings,
    KnowledgeItem,
    ActivityLogEntry,
    AgentUpsertRequest,
    AgentSettingsUpdateRequest,
    ChannelEnablementRequest,
    ChannelType,
)
from inbox_agent.services.agent_service import AgentService
from inbox_agent.services.supabase_client import get_supabase_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tenants/{tenant_id}/agent", tags=["agent"])


async def _require_agent(service: AgentService, tenant_id: str) -> AgentConfiguration:
    agent = await service.get_agent(tenant_id)
    if agent is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No agent configured for tenant {tenant_id}"
        )
    return agent


@router.get(
    "",
    response_model=AgentConfiguration,
    summary="Get tenant agent"
)
async def get_agent(tenant_id: str, supabase=Depends(get_supabase_client)):
    return await _require_agent(AgentService(supabase), tenant_id)


@router.put(
    "",
    response_model=AgentConfiguration,
    summary="Create or update tenant agent",
    description="Creates the tenant's agent on first setup, otherwise edits it"
)
async def upsert_agent(
    tenant_id: str,
    data: AgentUpsertRequest,
    supabase=Depends(get_supabase_client)
):
    try:
        return await AgentService(supabase).upsert_agent(tenant_id, data)
    except Exception as e:
        logger.error(f"Error saving agent for tenant {tenant_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save agent"
        )


@router.get(
    "/settings",
    response_model=AgentBehaviorSettings,
    summary="Get agent behavior settings"
)
async def get_agent_settings(tenant_id: str, supabase=Depends(get_supabase_client)):
    service = AgentService(supabase)
    agent = await _require_agent(service, tenant_id)
    return await service.get_agent_settings(tenant_id, agent.id)


@router.patch(
    "/settings",
    response_model=AgentBehaviorSettings,
    summary="Update agent behavior settings"
)
async def update_agent_settings(
    tenant_id: str,
    data: AgentSettingsUpdateRequest,
    supabase=Depends(get_supabase_client)
):
    service = AgentService(supabase)
    agent = await _require_agent(service, tenant_id)
    updated = await service.update_settings(tenant_id, agent.id, data)
    logger.info(f"⚙️ Agent settings updated for tenant {tenant_id}")
    return updated


@router.get(
    "/channels",
    response_model=Dict[str, bool],
    summary="Get channel enablement"
)
async def get_agent_channels(tenant_id: str, supabase=Depends(get_supabase_client)):
    service = AgentService(supabase)
    agent = await _require_agent(service, tenant_id)
    return await service.get_agent_channels(agent.id)


@router.put(
    "/channels/{channel_type}",
    response_model=Dict[str, bool],
    summary="Enable or disable the agent on a channel"
)
async def set_agent_channel(
    tenant_id: str,
    channel_type: ChannelType,
    data: ChannelEnablementRequest,
    supabase=Depends(get_supabase_client)
):
    service = AgentService(supabase)
    agent = await _require_agent(service, tenant_id)
    return await service.set_channel_enabled(tenant_id, agent.id, channel_type, data.is_enabled)


@router.get(
    "/knowledge",
    response_model=List[KnowledgeItem],
    summary="List knowledge items"
)
async def list_knowledge(tenant_id: str, supabase=Depends(get_supabase_client)):
    service = AgentService(supabase)
    agent = await _require_agent(service, tenant_id)
    return await service.list_knowledge(agent.id)


@router.get(
    "/activity",
    response_model=List[ActivityLogEntry],
    summary="List recent agent activity"
)
async def list_activity(
    tenant_id: str,
    limit: int = Query(50, ge=1, le=200),
    supabase=Depends(get_supabase_client)
):
    return await AgentService(supabase).list_activity_logs(tenant_id, limit=limit)
