"""
Inbox Agent API - Main Entry Point
Automated inbox agent runtime with WhatsApp (Evolution API) ingestion
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

# Import configuration
from inbox_agent.config import settings

# Import API routers
from inbox_agent.api import agent, threads, webhook

from inbox_agent.utils.background import pending_background_tasks

# Initialize logger
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan (startup/shutdown)"""
    logger.info(f"Starting Inbox Agent API ({settings.APP_ENV})...")

    if not settings.is_supabase_configured:
        logger.warning("⚠️ Supabase is not configured, data endpoints will return 503")
    if not settings.is_configured:
        logger.warning("⚠️ OPENAI_API_KEY is not configured, the agent will not reply")
    logger.info(f"📤 WhatsApp outbound enabled: {settings.ENABLE_WHATSAPP_OUTBOUND}")

    logger.info("Application startup complete")
    yield

    pending = pending_background_tasks()
    if pending:
        logger.info(f"🛑 Cancelling {len(pending)} running agent task(s)")
        for task in pending:
            task.cancel()
    logger.info("Application shutdown")


app = FastAPI(
    title="Inbox Agent API",
    description="Automated agent runtime for a multi-tenant inbox: eligibility, prompt assembly, paced delivery and WhatsApp ingestion.",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(webhook.router)  # Webhook endpoints (/api/webhooks/*)
app.include_router(agent.router)    # Agent configuration (/api/tenants/{tenant_id}/agent/*)
app.include_router(threads.router)  # Inbox thread actions (/api/tenants/{tenant_id}/threads/*)


@app.get(
    "/api/health",
    tags=["health"],
    summary="API Health Check"
)
def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": API_VERSION,
        "environment": settings.APP_ENV,
        "supabase_configured": settings.is_supabase_configured,
        "ai_configured": settings.is_configured,
        "whatsapp_outbound": settings.ENABLE_WHATSAPP_OUTBOUND,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
    )
