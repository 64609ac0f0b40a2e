"""
Application Configuration
Loads settings from environment variables.
"""

from typing import List
from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Espelho Meu API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_BASE_URL: str = "http://localhost:8000"  # Base URL for file serving
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Where the studio orchestrator reaches the generation proxy.
    # Empty means "this same process" (in-app ASGI transport).
    PROXY_BASE_URL: str = ""
    PROXY_TIMEOUT_SECONDS: float = 90.0

    # Database - SQLite for local dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./espelho.db"

    # Redis (wizard drafts + RQ)
    REDIS_URL: str = "redis://localhost:6379"
    USE_WORKER_QUEUE: bool = False
    USE_REDIS_DRAFTS: bool = False

    # Image generation (Gemini) - primary, image-capable provider
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash-image-preview"

    # Vision analysis (Groq) - cannot generate images
    GROQ_API_KEY: str = ""
    GROQ_MODEL: str = "llama-3.2-90b-vision-preview"
    GROQ_MAX_TOKENS: int = 4096

    # Sampling defaults sent with every generation request
    GENERATION_TEMPERATURE: float = 0.6
    GENERATION_TOP_K: int = 32
    GENERATION_TOP_P: float = 0.8

    # Local storage fallback
    LOCAL_STORAGE_PATH: str = "./uploads"

    # Google Cloud Storage
    USE_GCS: bool = False
    GCS_BUCKET_ASSETS: str = "espelho-assets"
    GCP_PROJECT_ID: str = ""

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Pipeline
    MAX_IMAGE_DIMENSION: int = 800
    JPEG_QUALITY: int = 80

    # Job lifecycle
    STALE_JOB_TIMEOUT_MINUTES: int = 10
    JOB_WATCH_TIMEOUT_SECONDS: int = 300
    JOB_POLL_INTERVAL_SECONDS: float = 4.0
    JOB_TIMEOUT_GENERATION: int = 120

    # Studio drafts expire with the browsing session; style preference does not
    DRAFT_TTL_SECONDS: int = 60 * 60 * 12

    @field_validator('GEMINI_API_KEY', 'GROQ_API_KEY', mode='before')
    @classmethod
    def strip_api_keys(cls, v):
        """Strip whitespace and newlines from API keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
