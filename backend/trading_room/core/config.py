from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    PROJECT_NAME: str = "Trading Room Order Engine"
    API_PREFIX: str = "/api"

    # Environment
    # ENVIRONMENT: "local", "test" or "production"
    # Only "local" falls back to a SQLite file when DATABASE_URL is unset
    ENVIRONMENT: str = "local"

    # Database
    DATABASE_URL: Optional[str] = None

    # Session tokens
    # SECRET_KEY: JWT secret shared with the auth provider (Supabase JWT secret)
    SECRET_KEY: Optional[str] = None
    ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None

    # Scheduler entry point
    # EXECUTE_SECRET: when set, POST .../execute requires a matching X-Exec-Secret header
    EXECUTE_SECRET: Optional[str] = None

    # Market data fallback for price-based triggers
    MARKET_DATA_BASE_URL: str = "https://api.bybit.com"
    MARKET_DATA_TIMEOUT: float = 5.0

    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore extra environment variables


settings = Settings()

# Validate SECRET_KEY is set (every write endpoint depends on it)
if not settings.SECRET_KEY:
    import warnings
    import os
    if os.getenv("ENVIRONMENT") != "test":
        warnings.warn(
            "SECRET_KEY is not set. Session tokens cannot be verified and every "
            "authenticated endpoint will answer 401. Set SECRET_KEY to the auth "
            "provider's JWT secret.",
            UserWarning
        )
