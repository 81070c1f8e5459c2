"""
Webhook Authentication Middleware
Resolves the WhatsApp connection of a webhook request from its shared secret
"""
from fastapi import HTTPException, status, Header, Depends
from typing import Optional
import logging

from inbox_agent.config import settings
from inbox_agent.models import WhatsAppConnection
from inbox_agent.services.supabase_client import get_supabase_client
from inbox_agent.services.whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)

WEBHOOK_SECRET_HEADER = "x-webhook-secret"


async def get_webhook_connection(
    x_webhook_secret: Optional[str] = Header(
        None,
        alias=WEBHOOK_SECRET_HEADER,
        description="Per-connection webhook secret"
    ),
    supabase=Depends(get_supabase_client)
) -> WhatsAppConnection:
    """
    Dependency resolving the connection that owns the webhook secret.

    Without a header, non-production environments fall back to the only
    configured connection.

    Raises:
        HTTPException: 401 if the secret is missing or unknown, 404 if no
            connection exists for the development fallback
    """
    service = WhatsAppService(supabase)

    if x_webhook_secret:
        connection = await service.get_connection_by_secret(x_webhook_secret)
        if connection is None:
            logger.warning(f"Invalid webhook secret. Provided: {x_webhook_secret[:6]}...")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid webhook secret"
            )
        logger.debug(f"✅ Webhook authenticated for connection {connection.id}")
        return connection

    if settings.is_production:
        logger.warning(f"Webhook request missing {WEBHOOK_SECRET_HEADER} header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {WEBHOOK_SECRET_HEADER} header"
        )

    connections = await service.list_connections(limit=2)
    if not connections:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No WhatsApp connection configured"
        )
    if len(connections) > 1:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {WEBHOOK_SECRET_HEADER} header"
        )

    logger.info(f"🔓 Webhook without secret accepted for connection {connections[0].id} ({settings.APP_ENV})")
    return connections[0]
