"""Application configuration via environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = "sqlite:///./alert_relay.db"
    encryption_key: str = ""  # Fernet key; generate with: python -m alert_relay.cli generate-key
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Ingestion
    webhook_secret: str = ""  # empty disables the secret check
    dedup_window_seconds: int = 60

    # Admin API auth
    admin_password: str = ""
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440  # 24 hours

    # Destinations
    telegram_bot_token: str = ""
    telegram_chat_ids: list[int] = []
    discord_webhook_url: str = ""
    external_dashboard_url: str = ""
    forward_timeout_seconds: float = 10.0

    # Activity log retention
    activity_log_max_rows: int = 1000
    activity_log_prune_minutes: int = 15

    model_config = {"env_prefix": "AR_", "env_file": ".env"}


settings = Settings()
