from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Literal, Optional


class Settings(BaseSettings):
    # Application
    app_name: str = "CareerOS-Expert-Chat"
    app_env: str = "development"
    debug: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = ["*"]

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # WebSocket relay
    ws_path: str = "/ws/expert-chat"
    send_queue_size: int = 256
    send_queue_overflow: Literal["disconnect", "drop_oldest"] = "disconnect"
    idle_timeout_seconds: float = 60.0
    pong_timeout_seconds: float = 10.0
    # Transport-level ping/pong, handled by uvicorn
    ws_ping_interval: float = 20.0
    ws_ping_timeout: float = 20.0

    # Message store
    message_store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    message_history_limit: int = 500
    message_fetch_default: int = 50

    # JWT (WebSocket tokens)
    jwt_secret_key: str = "your-jwt-secret-key"
    jwt_algorithm: str = "HS256"
    ws_require_token: bool = False
    ws_token_expire_seconds: int = 7200  # 2 hours

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
