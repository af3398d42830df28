"""Configuration management for the ABI Response Engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Environment
    REQ_ENGINE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Conversation persistence
    CONVERSATION_STORE_BACKEND: str = Field(
        default="supabase", description="Conversation store backend: supabase or memory"
    )

    # Auth cookies
    SESSION_COOKIE_NAME: str = Field(default="abi_session", description="HTTP-only session cookie")
    CSRF_COOKIE_NAME: str = Field(default="abi_csrf", description="Double-submit CSRF cookie")
    CSRF_HEADER_NAME: str = Field(default="x-csrf-token", description="Header echoing the CSRF cookie")
    VISITOR_COOKIE_NAME: str = Field(default="abi_visitor", description="Signed anonymous visitor cookie")
    VISITOR_COOKIE_SECRET: str = Field(
        default="change-me-in-production", description="HMAC secret for the visitor cookie"
    )
    VISITOR_COOKIE_MAX_AGE: int = Field(
        default=60 * 60 * 24 * 365, description="Visitor cookie lifetime in seconds"
    )

    # Deep research scoring
    DEEP_RESEARCH_MIN_QUERY_CHARS: int = Field(
        default=15, description="Queries shorter than this never score for deep research"
    )
    DEEP_RESEARCH_SUGGEST_THRESHOLD: float = Field(
        default=0.45, description="Score at which deep research is suggested"
    )
    DEEP_RESEARCH_INTERSTITIAL_THRESHOLD: float = Field(
        default=0.75, description="Score at which the deep research interstitial is shown"
    )

    # Deep research execution
    RESEARCH_STEP_TIMEOUT_SECONDS: float = Field(
        default=30.0, description="Wall-clock budget per processing step"
    )
    RESEARCH_MAX_STEP_RETRIES: int = Field(
        default=2, description="Retries for transient retrieval errors within a step"
    )
    RESEARCH_JOB_RETENTION_SECONDS: float = Field(
        default=3600.0, description="How long finished or abandoned jobs stay queryable"
    )

    # Credits and approvals
    CREDITS_AUTO_APPROVE_LIMIT: int = Field(
        default=500, description="Requests at or below this are auto-approved"
    )
    CREDITS_ADMIN_THRESHOLD: int = Field(
        default=2000, description="Requests at or above this need admin approval"
    )
    CREDITS_DEFAULT_BALANCE: int = Field(
        default=2500, description="Starting balance for users without a ledger entry"
    )

    # Rate limiting
    MESSAGES_PER_MINUTE: int = Field(default=20, description="Engine turns per visitor per minute")
    MESSAGES_BURST: int = Field(default=30, description="Burst size for engine turns")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance loaded from environment
    """
    return Settings()
