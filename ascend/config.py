"""Configuration management using pydantic-settings."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database settings
    db_server: str = "localhost"
    db_name: str = "ascend"
    db_user: str = "ascend"
    db_password: str = ""
    db_port: int = 5432
    db_pool_size: int = 20
    db_max_overflow: int = 40
    sql_echo: bool = False
    # Full SQLAlchemy URL; overrides the db_* fields when set (e.g. sqlite+aiosqlite)
    database_url_override: Optional[str] = None

    # JWT settings
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: str = "*"

    # WebSocket settings
    ws_max_connections_per_user: int = 20
    ws_max_message_size: int = 65536

    # Redis settings (WebSocket pub/sub fan-out and rate limiting)
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 50
    redis_socket_timeout: float = 5.0
    redis_retry_on_timeout: bool = True
    redis_required: bool = False

    # Rate limits (requests per window in seconds)
    rate_limit_auth_requests: int = 5
    rate_limit_auth_window: int = 300
    rate_limit_global_requests: int = 100
    rate_limit_global_window: int = 60

    # ARQ worker: due reminder scan runs at these minutes (comma-separated, 0-59)
    arq_due_reminder_minutes: str = "0,5,10,15,20,25,30,35,40,45,50,55"
    # ARQ worker: stale presence sweep runs at these seconds of every minute
    arq_presence_cleanup_seconds: str = "0,30"
    # Items due within this many minutes get a reminder
    due_reminder_lead_minutes: int = 60

    # Search result caps
    search_task_limit: int = 10
    search_project_limit: int = 5

    # Client toolkit defaults (ascend.client)
    client_api_url: str = "http://localhost:8000"
    client_stale_seconds: float = 30.0
    client_gc_seconds: float = 300.0
    client_mutation_max_retries: int = 3

    @property
    def database_url(self) -> str:
        """Build PostgreSQL async connection string."""
        if self.database_url_override:
            return self.database_url_override
        from urllib.parse import quote_plus
        return (
            f"postgresql+asyncpg://{self.db_user}:{quote_plus(self.db_password)}"
            f"@{self.db_server}:{self.db_port}/{self.db_name}"
        )

    @property
    def sync_database_url(self) -> str:
        """Build PostgreSQL sync connection string for Alembic."""
        from urllib.parse import quote_plus
        return (
            f"postgresql+psycopg2://{self.db_user}:{quote_plus(self.db_password)}"
            f"@{self.db_server}:{self.db_port}/{self.db_name}"
        )


# Global settings instance
settings = Settings()
