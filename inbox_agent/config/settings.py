"""
Application Configuration
Centralized configuration management using environment variables
"""
import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


class Settings:
    """Application settings loaded from environment variables"""

    # Runtime environment (production disables the single-connection webhook fallback)
    APP_ENV: str = os.getenv("APP_ENV", "development")

    # OpenAI Configuration
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_BASE_URL: Optional[str] = os.getenv("OPENAI_BASE_URL") or None
    GPT_MODEL: str = os.getenv("GPT_MODEL", "gpt-4o-mini")
    GPT_MAX_TOKENS: int = int(os.getenv("GPT_MAX_TOKENS", "1024"))
    GPT_TEMPERATURE: float = float(os.getenv("GPT_TEMPERATURE", "0.7"))
    OPENAI_TIMEOUT_SECONDS: float = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60"))
    # Only connection-level failures are retried; replies are not safely re-issuable
    OPENAI_CONNECT_RETRIES: int = int(os.getenv("OPENAI_CONNECT_RETRIES", "2"))

    # Supabase Configuration
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")  # Anon key for client
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

    # Evolution API (WhatsApp) fallback credentials, used when a connection has none
    EVOLUTION_BASE_URL: str = os.getenv("EVOLUTION_BASE_URL", "")
    EVOLUTION_API_KEY: str = os.getenv("EVOLUTION_API_KEY", "")
    EVOLUTION_TIMEOUT_SECONDS: float = float(os.getenv("EVOLUTION_TIMEOUT_SECONDS", "30"))
    ENABLE_WHATSAPP_OUTBOUND: bool = _env_bool("ENABLE_WHATSAPP_OUTBOUND")

    # Webhook rate limiting (fixed window per client IP)
    WEBHOOK_RATE_LIMIT_MAX: int = int(os.getenv("WEBHOOK_RATE_LIMIT_MAX", "120"))
    WEBHOOK_RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("WEBHOOK_RATE_LIMIT_WINDOW_SECONDS", "60"))

    # Agent runtime (local send path guard)
    AGENT_COOLDOWN_SECONDS: float = float(os.getenv("AGENT_COOLDOWN_SECONDS", "10"))
    AGENT_LEASE_TTL_SECONDS: float = float(os.getenv("AGENT_LEASE_TTL_SECONDS", "300"))

    # Plan limits (monthly)
    PLAN_MESSAGES_PER_MONTH: int = int(os.getenv("PLAN_MESSAGES_PER_MONTH", "6000"))
    PLAN_AI_RESPONSES_PER_MONTH: int = int(os.getenv("PLAN_AI_RESPONSES_PER_MONTH", "2000"))
    PLAN_THREADS_PER_MONTH: int = int(os.getenv("PLAN_THREADS_PER_MONTH", "300"))

    # CORS Configuration
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:8080,http://localhost:5173").split(",")
        if origin.strip()
    ]

    @property
    def is_configured(self) -> bool:
        """Check if the text-generation provider key is present"""
        return bool(self.OPENAI_API_KEY.strip())

    @property
    def is_supabase_configured(self) -> bool:
        """Check if Supabase configuration is present"""
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_KEY)

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.strip().lower() == "production"


# Global settings instance
settings = Settings()
