"""
Centralised configuration loaded from environment variables.

All settings live here, never scattered across modules.
Budgets are in seconds; leave max_time_seconds or concurrency empty to disable them.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    max_time_seconds: Optional[float] = 10.0
    concurrency: Optional[int] = None
    plugin_timeout_seconds: float = 3.0
    directory_url: str = "http://localhost:9000"
    cache_ttl_seconds: float = 3600.0
    cache_prune_interval_seconds: int = 300
    log_level: str = "INFO"

    class Config:
        env_file = ".env"


# Single shared instance, import this everywhere
settings = Settings()
