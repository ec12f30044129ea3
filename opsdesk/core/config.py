# opsdesk/core/config.py
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DATABASE_URL: str
    POSTGRES_DB: Optional[str] = None # Only used to bootstrap a local PostgreSQL database

    DATABASE_ECHO_SQL: bool = False
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_CONNECT_RETRIES: int = 10
    DATABASE_CONNECT_RETRY_DELAY: int = 5

    # Redis backs the per-(staff, date) generation lock. The engine still runs without it,
    # the unique index on work_tasks is what guarantees dedup.
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    GENERATION_LOCK_TTL_SECONDS: int = 30

    # Runbook generation
    RUNBOOK_DEFAULT_RANGE_DAYS: int = 1
    RUNBOOK_MAX_RANGE_DAYS: int = 31

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
