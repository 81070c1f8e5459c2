"""
Supabase Client
Shared service-role client used by the persistence services and FastAPI dependencies
"""
import logging
from typing import Optional
from fastapi import HTTPException, status
from supabase import create_client, Client

from inbox_agent.config import settings

logger = logging.getLogger(__name__)

_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Get or create the service-role Supabase client.

    Raises:
        HTTPException: 503 if Supabase is not configured
    """
    global _client
    if not settings.is_supabase_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase is not configured"
        )
    if _client is None:
        _client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
        logger.info("🗄️ Supabase client created")
    return _client
