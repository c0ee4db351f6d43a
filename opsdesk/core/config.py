# opsdesk/core/config.py
"""Application configuration using Pydantic."""
from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    database_url: str
    redis_url: str = 'redis://localhost:6379/0'
    jwt_secret_key: str
    jwt_algorithm: str = 'HS256'

    app_version: str = '1.0.0'
    environment: str = 'development'
    log_level: str = 'info'
    allowed_origins: List[str] = ['*']

    # Redis cache (fails open when unreachable)
    cache_enabled: bool = True
    cache_ttl_seconds: int = 60

    # Live feed polling
    chat_poll_interval_seconds: float = 1.5
    chat_poll_overlap_seconds: float = 1.0
    chat_stream_max_lifetime_seconds: float = 300.0

    # Message listing / sending
    chat_page_size_default: int = 50
    chat_page_size_max: int = 100
    chat_message_max_length: int = 4000
    chat_send_rate_limit_per_minute: int = 60

    model_config = {
        'env_file': '.env',
        'extra': 'ignore'
    }

settings = Settings()
