from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List


LOCK_BACKENDS = ("memory", "database")


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")
    
    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./calsync.db",
        alias="DATABASE_URL"
    )
    
    # CORS - dashboard URLs (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173",
        alias="ALLOWED_ORIGINS"
    )
    
    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")
    
    # ==============================================
    # Calendar Sync Settings
    # ==============================================
    # Concurrent feed fetches; keep low to stay polite with the platforms
    sync_pool_size: int = Field(default=4, alias="SYNC_POOL_SIZE")
    
    # Connect/read timeout, and the deadline for the whole download
    sync_fetch_timeout_seconds: float = Field(default=20.0, alias="SYNC_FETCH_TIMEOUT_SECONDS")
    # Feeds are a few KB; anything past this is not a calendar
    sync_fetch_max_bytes: int = Field(default=5 * 1024 * 1024, alias="SYNC_FETCH_MAX_BYTES")
    
    # Scheduler tick
    sync_interval_minutes: int = Field(default=15, alias="SYNC_INTERVAL_MINUTES")
    sync_scheduler_enabled: bool = Field(default=True, alias="SYNC_SCHEDULER_ENABLED")
    
    sync_user_agent: str = Field(default="calsync/1.0", alias="SYNC_USER_AGENT")
    
    # "memory" for a single process, "database" when several instances run
    sync_lock_backend: str = Field(default="memory", alias="SYNC_LOCK_BACKEND")
    sync_lock_ttl_seconds: int = Field(default=600, alias="SYNC_LOCK_TTL_SECONDS")
    
    # Status widget
    sync_recent_alerts_limit: int = Field(default=20, alias="SYNC_RECENT_ALERTS_LIMIT")
    
    @field_validator('sync_pool_size')
    @classmethod
    def validate_pool_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("SYNC_POOL_SIZE must be at least 1")
        return v
    
    @field_validator('sync_lock_backend')
    @classmethod
    def validate_lock_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in LOCK_BACKENDS:
            raise ValueError(f"SYNC_LOCK_BACKEND must be one of {', '.join(LOCK_BACKENDS)}")
        return v
    
    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"
    
    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)
        
        return origins if origins else ["http://localhost:5173"]
    
    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()
