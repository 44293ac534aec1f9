# chatrelay/config.py
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    PROJECT_NAME: str = "Chat Relay API"
    PROJECT_VERSION: str = "1.0.0"
    PROJECT_DESCRIPTION: str = "Chat backend with real-time room and direct message fan-out"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_SECRET_KEY: str
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    REDIS_HOST: str
    REDIS_PORT: int
    DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"

    # realtime
    ROOM_ECHO_POLICY: Literal["all", "other_connections", "none"] = "all"
    DELIVERY_TIMEOUT_SECONDS: float = 5.0
    MEMBERSHIP_CACHE_TTL_SECONDS: float = 0
    REPLY_THREAD_MAX_DEPTH: int = 16
    SEEN_EVENT_CACHE_SIZE: int = 1024

    model_config = SettingsConfigDict(env_file=".env", extra="allow")
