"""Application settings via pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables with RIDEON_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="RIDEON_",
        env_file=".env",
        case_sensitive=False,
    )

    # --- Core ---
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    redis_url: str = "redis://localhost:6379/0"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60
    log_level: str = "INFO"
    log_format: str = "json"

    # --- Identity tokens ---
    jwt_secret: str = "rideon-dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "rideon"
    jwt_access_token_expire_minutes: int = 60

    # --- Registration ---
    email_password_signup_enabled: bool = True
    password_min_length: int = 6
    identity_ready_timeout_seconds: float = 10.0
    invitation_ttl_days: int = 7

    # --- Mileage ---
    week_timezone: str = "UTC"
    max_miles_per_entry: float = 1000.0

    # --- Leaderboard ---
    leaderboard_team_limit: int = 50
    leaderboard_user_limit: int = 50
    leaderboard_team_week_limit: int = 100
    leaderboard_user_week_limit: int = 200

    # --- Document store ---
    store_commit_retries: int = 5


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
