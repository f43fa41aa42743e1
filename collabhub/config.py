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
    db_name: str = "collabhub"
    db_user: str = "collabhub"
    db_password: str = ""
    db_port: int = 5432
    db_pool_size: int = 20
    db_max_overflow: int = 40
    sql_echo: bool = False

    # Any SQLAlchemy async URL, e.g. "sqlite+aiosqlite:///./collabhub.db"
    database_url_override: Optional[str] = None

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # WebSocket settings
    ws_max_connections_per_user: int = 20
    ws_max_message_size: int = 65536  # 64KB max frame size
    ws_receive_timeout: float = 45.0

    # Chat settings
    chat_rate_limit_window_seconds: float = 10.0
    chat_rate_limit_max_messages: int = 5
    chat_typing_timeout_seconds: float = 3.0
    chat_store_timeout_seconds: float = 5.0
    chat_history_default_limit: int = 50
    chat_history_max_limit: int = 200

    @property
    def database_url(self) -> str:
        """Build the async connection string (PostgreSQL unless overridden)."""
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
