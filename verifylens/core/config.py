"""
Application configuration settings
"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """
    # Project metadata
    PROJECT_NAME: str = "VerifyLens API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DOCUMENTATION_URL: str = "/docs"

    # Database - SQLite for local development, PostgreSQL in production
    DATABASE_URL: str = "sqlite+aiosqlite:///./verifylens.db"

    # Redis (cooldown store)
    REDIS_URL: str = "redis://localhost:6379/0"
    COOLDOWN_BACKEND: str = "redis"  # "redis" or "memory"

    # API keys
    API_KEY_PREFIX: str = "vl_live_"
    API_KEY_LOOKUP_LENGTH: int = 16  # prefix + first 8 random chars
    API_KEY_BCRYPT_ROUNDS: int = 12

    # Admin token for key management routes (disabled when unset)
    ADMIN_API_TOKEN: Optional[str] = None

    # Pricing (credits per verification)
    EXACT_VERIFY_COST: int = 100
    SMART_VERIFY_COST: int = 100

    # Cooldown windows (seconds between accepted calls)
    EXACT_VERIFY_COOLDOWN: int = 5
    SMART_VERIFY_COOLDOWN: int = 30

    # Result cache
    CACHE_TTL_DAYS: int = 30
    CACHE_SWEEP_INTERVAL_SECONDS: int = 3600

    # Verification provider
    VERIFICATION_TIMEOUT_SECONDS: float = 10.0
    MOCK_PROVIDER_MIN_DELAY: float = 0.2
    MOCK_PROVIDER_MAX_DELAY: float = 0.7
    MOCK_PROVIDER_NOT_FOUND_RATE: float = 0.15

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Create global settings instance
settings = Settings()
