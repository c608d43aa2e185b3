from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PUBSUB_CHANNEL: str = "chat.sync"
    # Single-node deployments (and tests) can run without the cross-node relay.
    REDIS_RELAY_ENABLED: bool = True

    JWT_SECRET: str = ""
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None
    JWT_AUDIENCE: str | None = None

    CORS_ORIGINS: list[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    OUTBOX_POLL_INTERVAL: float = 1.0
    OUTBOX_BATCH_SIZE: int = 50
    OUTBOX_MAX_ATTEMPTS: int = 5

    WS_HEARTBEAT_SECONDS: int = 30

    SEQUENCE_MAX_ATTEMPTS: int = 8
    SEQUENCE_BACKOFF_SECONDS: float = 0.005
    FANOUT_SEND_ATTEMPTS: int = 3
    FANOUT_BACKOFF_SECONDS: float = 0.05
    REPLAY_PAGE_SIZE: int = 200

    MEDIA_BASE_URL: str = "https://api.cloudinary.com/v1_1"
    MEDIA_CLOUD_NAME: str = ""
    MEDIA_UPLOAD_PRESET: str = ""
    MEDIA_FOLDER: str = "chat/media"
    MEDIA_MAX_BYTES: int = 50 * 1024 * 1024
    MEDIA_TIMEOUT_SECONDS: float = 60.0

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
