"""
Webhook API Endpoints
Receive inbound WhatsApp messages from Evolution API (and the mock provider)
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
import logging
from typing import Optional

from inbox_agent.middleware.rate_limit import webhook_rate_limit
from inbox_agent.middleware.webhook_auth import get_webhook_connection
from inbox_agent.models import WebhookAckResponse, WhatsAppConnection
from inbox_agent.services.ai_response_service import run_agent_after_inbound
from inbox_agent.services.inbound_parser import parse_inbound_payload, verify_subscription
from inbox_agent.services.message_router_service import get_message_router_service
from inbox_agent.services.supabase_client import get_supabase_client
from inbox_agent.services.whatsapp_service import WhatsAppService
from inbox_agent.utils.background import spawn_detached

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhook"])


@router.post(
    "/evolution",
    response_model=WebhookAckResponse,
    status_code=status.HTTP_200_OK,
    summary="Receive WhatsApp message",
    description="Webhook endpoint for inbound WhatsApp messages. Authenticated by x-webhook-secret.",
    dependencies=[Depends(webhook_rate_limit)]
)
async def evolution_webhook(
    request: Request,
    connection: WhatsAppConnection = Depends(get_webhook_connection),
    supabase=Depends(get_supabase_client)
):
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    inbound = parse_inbound_payload(connection.provider, payload)
    if inbound is None:
        logger.info(f"📭 Ignoring webhook payload for connection {connection.id}")
        return WebhookAckResponse(status="ignored")

    logger.info(f"📱 WhatsApp message from {inbound.contact_phone} on connection {connection.id}")

    try:
        router_service = get_message_router_service(supabase)
        result = await router_service.route_incoming_message(connection, inbound)
    except Exception as e:
        # 200 so the provider does not retry indefinitely
        logger.error(f"❌ Error processing WhatsApp webhook: {e}", exc_info=True)
        return WebhookAckResponse(success=False, status="error")

    spawn_detached(
        run_agent_after_inbound(result["tenant_id"], result["thread_id"], supabase),
        name=f"agent-inbound-{result['thread_id']}"
    )

    return WebhookAckResponse(thread_id=result["thread_id"])


@router.get(
    "/evolution",
    response_class=PlainTextResponse,
    summary="Verify webhook subscription",
    dependencies=[Depends(webhook_rate_limit)]
)
async def verify_webhook(
    connection_id: str = Query(..., description="WhatsApp connection id"),
    verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
    supabase=Depends(get_supabase_client)
):
    connection = await WhatsAppService(supabase).get_connection(connection_id)
    if connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Connection not found")

    params = {"hub.verify_token": verify_token, "hub.challenge": challenge}
    answer = verify_subscription(params, connection.webhook_secret)
    if answer is None:
        logger.warning(f"Webhook verification failed for connection {connection_id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")

    return PlainTextResponse(answer)
