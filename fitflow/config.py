"""
Configuration management for FitFlow.

Configuration is loaded from environment variables (and a .env file) with
fallbacks to sensible defaults for development.
"""

from typing import Dict, Any, Optional
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load .env file from the project root, then from the current directory
project_root = Path(__file__).parent.parent
load_dotenv(project_root / ".env")
load_dotenv()


class ElasticsearchConfig(BaseSettings):
    """Elasticsearch connection configuration."""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    host: str = Field(default="http://localhost:9200", alias="ELASTICSEARCH_HOST")
    username: str = Field(default="elastic", alias="ELASTICSEARCH_USER")
    password: str = Field(default="ChangeMe", alias="ELASTIC_PASSWORD")
    index_prefix: str = Field(default="fitflow", alias="ELASTICSEARCH_INDEX_PREFIX")
    timeout: int = Field(default=30)
    max_retries: int = Field(default=3)
    retry_on_timeout: bool = Field(default=True)
    verify_certs: bool = Field(default=False)

    @property
    def hosts(self) -> list[str]:
        """Get hosts as a list, scheme included."""
        host = self.host
        if not host.startswith(("http://", "https://")):
            host = f"http://{host}"
        return [host]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to keyword arguments for the Elasticsearch client."""
        config = {
            'hosts': self.hosts,
            'request_timeout': self.timeout,
            'max_retries': self.max_retries,
            'retry_on_timeout': self.retry_on_timeout,
            'verify_certs': self.verify_certs,
        }
        if self.username and self.password:
            config['basic_auth'] = (self.username, self.password)
        return config


class IngestConfig(BaseSettings):
    """Upload pipeline limits and batching."""

    model_config = SettingsConfigDict(env_prefix="FITFLOW_")

    batch_size: int = Field(default=500, gt=0)
    batch_pause_seconds: float = Field(default=0.01, ge=0)
    max_file_size_bytes: int = Field(default=10 * 1024 * 1024)  # 10MB
    file_suffix: str = Field(default=".fit")
    max_records_per_lap: int = Field(default=10_000)
    large_dataset_threshold: int = Field(default=50_000)


class BlobStorageConfig(BaseSettings):
    """Raw FIT file archive configuration."""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    base_dir: str = Field(default="storage/fit-files", alias="FIT_FILES_DIR")
    delete_batch_size: int = Field(default=50)
    delete_batch_pause_seconds: float = Field(default=0.1)

    @property
    def base_path(self) -> Path:
        """Get archive directory as Path object."""
        return Path(self.base_dir)


class RabbitMQConfig(BaseSettings):
    """RabbitMQ connection configuration."""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    host: str = Field(default="localhost", alias="RABBITMQ_HOST")
    port: int = Field(default=5672, alias="RABBITMQ_PORT")
    username: str = Field(default="admin", alias="RABBITMQ_DEFAULT_USER")
    password: str = Field(default="ChangeMe", alias="RABBITMQ_DEFAULT_PASS")
    vhost: str = Field(default="/", alias="RABBITMQ_VHOST")

    @property
    def broker_url(self) -> str:
        """Get the complete broker URL for Celery."""
        vhost_part = self.vhost if self.vhost != '/' else ''
        return f"pyamqp://{self.username}:{self.password}@{self.host}:{self.port}/{vhost_part}"

    @property
    def result_backend(self) -> str:
        """Get the result backend URL."""
        return "rpc://"


class CeleryConfig(BaseSettings):
    """Celery application configuration."""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    task_serializer: str = Field(default="json")
    result_serializer: str = Field(default="json")
    accept_content: list[str] = Field(default=["json"])
    timezone: str = Field(default="UTC")
    enable_utc: bool = Field(default=True)

    task_always_eager: bool = Field(default=False, alias="CELERY_TASK_ALWAYS_EAGER")
    task_acks_late: bool = Field(default=True)
    worker_prefetch_multiplier: int = Field(default=1)

    task_soft_time_limit: int = Field(default=240)  # 4 minutes
    task_time_limit: int = Field(default=300)  # 5 minutes

    worker_concurrency: int = Field(default=4, alias="WORKER_CONCURRENCY")


class Settings(BaseSettings):
    """Main application settings combining all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore",
        populate_by_name=True,
    )

    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")

    elasticsearch: ElasticsearchConfig = Field(default_factory=ElasticsearchConfig)
    ingest: IngestConfig = Field(default_factory=IngestConfig)
    blob_storage: BlobStorageConfig = Field(default_factory=BlobStorageConfig)
    rabbitmq: RabbitMQConfig = Field(default_factory=RabbitMQConfig)
    celery: CeleryConfig = Field(default_factory=CeleryConfig)

    def get_celery_config(self) -> Dict[str, Any]:
        """Get complete Celery configuration dictionary."""
        return {
            "broker_url": self.rabbitmq.broker_url,
            "result_backend": self.rabbitmq.result_backend,
            "task_serializer": self.celery.task_serializer,
            "result_serializer": self.celery.result_serializer,
            "accept_content": self.celery.accept_content,
            "timezone": self.celery.timezone,
            "enable_utc": self.celery.enable_utc,
            "task_always_eager": self.celery.task_always_eager,
            "task_acks_late": self.celery.task_acks_late,
            "worker_prefetch_multiplier": self.celery.worker_prefetch_multiplier,
            "task_soft_time_limit": self.celery.task_soft_time_limit,
            "task_time_limit": self.celery.task_time_limit,
            "task_routes": {"fitflow.tasks.*": {"queue": "ingest"}},
            "result_expires": 3600,  # 1 hour
            "worker_send_task_events": True,
            "task_send_sent_event": True,
            "include": ["fitflow.tasks"],
        }


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get complete application settings."""
    return settings


def get_elasticsearch_config() -> Dict[str, Any]:
    """Get Elasticsearch configuration as dictionary."""
    return settings.elasticsearch.to_dict()


def get_ingest_config() -> IngestConfig:
    """Get upload pipeline configuration."""
    return settings.ingest


def get_celery_config() -> Dict[str, Any]:
    """Get Celery configuration dictionary."""
    return settings.get_celery_config()
