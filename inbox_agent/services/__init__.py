"""Business logic services"""
from .supabase_client import get_supabase_client
from .ai_provider import AIProvider, OpenAIProvider, MissingCredentialError, UpstreamError, get_ai_provider
from .thread_lease import ActiveRunRegistry, ThreadLease, ThreadLeaseRegistry, active_runs, thread_leases
from .agent_service import AgentService
from .inbox_service import InboxService
from .usage_service import UsageService
from .whatsapp_service import WhatsAppService

__all__ = [
    "get_supabase_client",
    "AIProvider",
    "OpenAIProvider",
    "MissingCredentialError",
    "UpstreamError",
    "get_ai_provider",
    "ActiveRunRegistry",
    "ThreadLease",
    "ThreadLeaseRegistry",
    "thread_leases",
    "active_runs",
    "AgentService",
    "InboxService",
    "UsageService",
    "WhatsAppService",
]
