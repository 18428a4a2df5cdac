"""
Ordino - Configuration Management

Central configuration using Pydantic settings with multi-provider LLM support
and the third-party integrations (Firecrawl, Google) the back office talks to.
"""

from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # LLM Provider Configuration
    llm_provider: LLMProvider = Field(
        default=LLMProvider.OPENAI,
        description="LLM provider to use"
    )

    # Provider API Keys
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API key")
    google_api_key: Optional[str] = Field(default=None, description="Google API key")

    # Model Configuration
    llm_model: Optional[str] = Field(
        default=None,
        description="Model to use (defaults based on provider)"
    )
    llm_temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Model temperature"
    )
    llm_base_url: Optional[str] = Field(
        default=None,
        description="OpenAI-compatible gateway URL (leave empty for the provider's own endpoint)"
    )

    # Firecrawl (RFP source scraping)
    firecrawl_api_key: Optional[str] = Field(default=None, description="Firecrawl API key")
    firecrawl_api_url: str = Field(
        default="https://api.firecrawl.dev/v1/scrape",
        description="Firecrawl scrape endpoint"
    )

    # Google OAuth (Gmail + Calendar)
    google_client_id: Optional[str] = Field(default=None, description="Google OAuth client ID")
    google_client_secret: Optional[str] = Field(default=None, description="Google OAuth client secret")
    google_redirect_uri: str = Field(
        default="http://localhost:8000/api/v1/google/callback",
        description="OAuth redirect URI registered with Google"
    )
    default_timezone: str = Field(
        default="America/New_York",
        description="Timezone used for timed calendar events"
    )

    # Storage Configuration
    data_dir: Path = Field(
        default=Path("./data"),
        description="Data directory for generated files and logs"
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_env: str = Field(default="development", description="API environment")
    log_level: str = Field(default="INFO", description="Console log level")
    log_to_file: bool = Field(default=True, description="Also write a daily log file under data/logs")
    cors_origins: str = Field(
        default="http://localhost:8501,http://localhost:3000",
        description="CORS origins (comma-separated)"
    )

    # Database Configuration
    database_url: str = Field(
        default="postgresql+asyncpg://localhost/ordino",
        description="Database connection URL"
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL queries for debugging"
    )
    database_pool_size: int = Field(default=5, description="Connections kept open per process")
    database_max_overflow: int = Field(default=10, description="Extra connections allowed under load")

    # Redis Configuration (Job Queue)
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL"
    )

    # JWT Configuration
    jwt_secret: str = Field(
        default="change-this-in-production-use-long-random-string",
        description="JWT signing secret"
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT algorithm")
    jwt_expire_minutes: int = Field(default=30, description="Access token expiry")
    jwt_refresh_expire_days: int = Field(default=7, description="Refresh token expiry")

    # Business defaults
    default_min_relevance_score: int = Field(
        default=60,
        ge=0,
        le=100,
        description="Minimum AI relevance score for a discovered RFP to be kept"
    )
    rfp_page_char_limit: int = Field(
        default=20000,
        description="Characters of scraped page content sent to the LLM"
    )
    public_form_url: str = Field(
        default="http://localhost:3000/rfi",
        description="Base URL of the public questionnaire page; the access token is appended"
    )
    default_payment_terms: str = Field(default="Net 30", description="Invoice payment terms")
    high_value_proposal_threshold: Decimal = Field(
        default=Decimal("15000"),
        description="Proposals above this total get timeline-focused follow-ups"
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def active_api_key(self) -> Optional[str]:
        """Get the API key for the active provider."""
        key_map = {
            LLMProvider.OPENAI: self.openai_api_key,
            LLMProvider.ANTHROPIC: self.anthropic_api_key,
            LLMProvider.GEMINI: self.google_api_key,
        }
        return key_map.get(self.llm_provider)

    @property
    def default_model(self) -> str:
        """Get the default model for the active provider."""
        if self.llm_model:
            return self.llm_model

        defaults = {
            LLMProvider.OPENAI: "gpt-4o-mini",
            LLMProvider.ANTHROPIC: "claude-3-5-sonnet-20241022",
            LLMProvider.GEMINI: "gemini-1.5-flash",
        }
        return defaults.get(self.llm_provider, "gpt-4o-mini")

    @property
    def google_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    # Data directories
    @property
    def logs_dir(self) -> Path:
        path = self.data_dir / "logs"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def rfp_documents_dir(self) -> Path:
        """Directory for uploaded RFP documents."""
        path = self.data_dir / "rfp_documents"
        path.mkdir(parents=True, exist_ok=True)
        return path


# Global settings instance
settings = Settings()
