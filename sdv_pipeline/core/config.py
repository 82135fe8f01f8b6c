from typing import List, Optional
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration settings."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_", extra="ignore")

    url: str = Field(default="sqlite:///./sdv_pipeline.db")
    echo: bool = Field(default=False)
    pool_size: int = Field(default=5)
    max_overflow: int = Field(default=10)
    pool_recycle: int = Field(default=3600)  # seconds


class RedisSettings(BaseSettings):
    """Redis configuration settings."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    host: str = Field(default="localhost")
    port: int = Field(default=6379)
    password: Optional[str] = Field(default=None)
    db: int = Field(default=0)
    url: Optional[str] = Field(default=None)
    enabled: bool = Field(default=False)

    def build_url(self) -> str:
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class CelerySettings(BaseSettings):
    """Celery configuration settings."""

    model_config = SettingsConfigDict(env_prefix="CELERY_", extra="ignore")

    broker_url: Optional[str] = Field(default=None)
    result_backend: Optional[str] = Field(default=None)
    task_serializer: str = Field(default="json")
    accept_content: List[str] = Field(default=["json"])
    result_serializer: str = Field(default="json")
    timezone: str = Field(default="UTC")
    enable_utc: bool = Field(default=True)
    worker_concurrency: int = Field(default=4)


class StorageSettings(BaseSettings):
    """Blob storage configuration settings."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_", extra="ignore")

    default_storage: str = Field(default="local")  # local, s3, memory
    local_storage_path: str = Field(default="./uploads")
    max_file_size: int = 200 * 1024 * 1024  # 200MB in bytes

    # AWS S3 settings
    aws_s3_bucket: Optional[str] = Field(default=None)
    aws_s3_region: Optional[str] = Field(default="us-east-1")
    aws_s3_access_key_id: Optional[str] = Field(default=None)
    aws_s3_secret_access_key: Optional[str] = Field(default=None)
    aws_s3_endpoint_url: Optional[str] = Field(default=None)  # MinIO and other S3-compatible stores


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: str = Field(default="INFO")
    json_format: bool = Field(default=False)
    format: str = Field(default="%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    file_path: Optional[str] = Field(default=None)
    max_bytes: int = Field(default=10 * 1024 * 1024)
    backup_count: int = Field(default=5)


class PipelineSettings(BaseSettings):
    """Tunables for ingestion, merge and reporting."""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_", extra="ignore")

    chunk_threshold_bytes: int = Field(default=10 * 1024 * 1024)
    chunk_upload_max_attempts: int = Field(default=3)
    chunk_upload_retry_delay: float = Field(default=1.0)  # seconds, multiplied by the attempt number
    raw_insert_batch_size: int = Field(default=1000)

    merge_page_size: int = Field(default=1000)
    merge_batch_size: int = Field(default=500)
    auto_merge: bool = Field(default=True)

    # Throughput assumptions behind estimate_hours / estimate_days
    minutes_per_review_item: float = Field(default=60)
    hours_per_day: float = Field(default=7)

    job_history_limit: int = Field(default=20)
    job_stale_after_seconds: Optional[int] = Field(default=None)

    task_backend: str = Field(default="celery")  # celery, local
    local_worker_concurrency: int = Field(default=2)


class Settings(BaseSettings):
    project_name: str = Field(default="SDV Pipeline")
    version: str = Field(default="0.1.0")
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    api_prefix: str = Field(default="/api/v1")
    cors_allowed_origins: List[str] = Field(default=["*"])

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    celery: CelerySettings = Field(default_factory=CelerySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)

    # Pagination
    default_page_size: int = Field(default=50)
    max_page_size: int = Field(default=1000)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", env_file_encoding="utf-8")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        return self.environment == "testing"


@lru_cache
def get_settings() -> Settings:
    return Settings()
