"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1024, le=65535)
    debug: bool = Field(default=False)
    cors_origins: List[str] = Field(default=["http://localhost:3000"])

    # Cache Configuration
    redis_url: Optional[str] = Field(default=None)
    redis_enabled: bool = Field(default=False)
    redis_required: bool = Field(default=False)
    cache_command_timeout: float = Field(default=0.5, gt=0, le=10)
    cache_failure_threshold: int = Field(default=3, ge=1, le=20)
    cache_retry_after: float = Field(default=30.0, ge=1, le=600)
    cache_max_value_bytes: int = Field(default=5 * 1024 * 1024, ge=1024)  # 5 MB

    # Content TTLs (seconds)
    content_metadata_ttl: int = Field(default=7200, ge=60)  # 2 hours
    content_full_ttl: int = Field(default=7200, ge=60)
    content_list_ttl: int = Field(default=1800, ge=60)

    # Source of truth
    content_source: Literal["file", "database"] = Field(default="file")
    content_dir: str = Field(default="content")
    database_url: str = Field(default="sqlite+aiosqlite:///./data/content.db")
    database_echo: bool = Field(default=False)

    # Analytics
    analytics_enabled: bool = Field(default=True)
    trending_window_days: int = Field(default=7, ge=1, le=30)
    trending_half_life_days: float = Field(default=2.0, gt=0, le=30)
    trending_max_limit: int = Field(default=100, ge=1, le=1000)
    trending_cleanup_cron: str = Field(default="0 3 * * *")
    daily_views_ttl: int = Field(default=604800, ge=86400)  # 7 days
    batch_chunk_size: int = Field(default=100, ge=1, le=1000)

    # Build pipeline
    build_manifest_path: str = Field(default=".cache/build-manifest.json")
    cache_warm_on_startup: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
