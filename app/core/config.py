# app/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic import validator
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from .env"""

    # === Database ===
    DATABASE_URL: str = "sqlite+aiosqlite:///./inventory_sync.db"
    DATABASE_TEST_URL: Optional[str] = None

    @validator("DATABASE_URL")
    def validate_database_url(cls, v):
        """Ensure database URL is safe for current environment"""
        env = os.getenv("ENVIRONMENT", "development").lower()
        if env == "production" and "localhost" in v:
            raise ValueError("🚨 Production environment cannot use localhost database!")
        return v

    # === Accurate Online API ===
    ACCURATE_API_HOST: str = "https://zeus.accurate.id/accurate/api"
    ACCURATE_API_TOKEN: str = ""
    ACCURATE_SIGNATURE_SECRET: str = ""
    ACCURATE_DB_ID: str = "453772"
    ACCURATE_TIMEOUT_SECONDS: float = 30.0

    # === Cache ===
    CACHE_BACKEND: str = "database"  # 'database' | 'redis' | 'memory'
    SALES_CACHE_TTL_SECONDS: int = 3600
    WAREHOUSE_STOCK_CACHE_TTL_SECONDS: int = 7200
    PO_CACHE_TTL_SECONDS: int = 3600
    SO_CACHE_TTL_SECONDS: int = 3600

    @validator("CACHE_BACKEND")
    def validate_cache_backend(cls, v):
        if v not in ("database", "redis", "memory"):
            raise ValueError(f"Unsupported cache backend: {v}")
        return v

    # === Redis / Celery ===
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # === CORS ===
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    ALLOWED_METHODS: List[str] = ["*"]
    ALLOWED_HEADERS: List[str] = ["*"]

    # === System ===
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    TIMEZONE: str = "Asia/Jakarta"

    # === Remote listing ===
    LIST_PAGE_SIZE: int = 100
    INVOICE_MAX_PAGES: int = 500
    PO_MAX_PAGES: int = 200
    SO_MAX_PAGES: int = 500
    ITEM_MAX_PAGES: int = 50
    MAX_CONSECUTIVE_EMPTY_PAGES: int = 30

    # === Detail fetching ===
    DETAIL_MAX_RETRIES: int = 3
    DETAIL_BACKOFF_SECONDS: float = 1.0
    RETRY_PASS_DELAY_SECONDS: float = 0.5
    INVOICE_BATCH_SIZE: int = 20
    PO_BATCH_SIZE: int = 15
    SO_BATCH_SIZE: int = 15
    WAREHOUSE_BATCH_SIZE: int = 10

    # === Sync jobs ===
    SYNC_MAX_ATTEMPTS: int = 3
    SYNC_RETRY_DELAY_SECONDS: float = 120.0
    SYNC_ATTEMPT_TIMEOUT_SECONDS: float = 900.0
    SYNC_STALE_LOCK_SECONDS: float = 1200.0
    SYNC_HISTORY_LIMIT: int = 50
    DEFAULT_SYNC_FROM_DATE: str = "2025-01-01"

    # === Business Rules (analytics) ===
    LEAD_TIME_DAYS: int = 14
    SERVICE_LEVEL: float = 0.95
    Z_SCORE: float = 1.645
    HOLDING_COST_PCT: float = 0.25
    ORDER_COST: float = 150000
    DEFAULT_ANALYSIS_START: str = "2025-01-01"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


# Create a global settings instance
settings = Settings()
