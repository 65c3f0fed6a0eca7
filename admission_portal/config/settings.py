from typing import List, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "Admission Portal"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    """Pydantic v2 doesn't support parsing List[str] from a plain comma-separated string by default anymore."""
    ALLOWED_HOSTS: Union[str, List[str]] = ["http://localhost:3000"]
    LOG_LEVEL: str = "info"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./admission_portal.db"

    # MinIO Object Storage
    MINIO_ENDPOINT: str = "localhost:9000"
    MINIO_ACCESS_KEY: str = "minioadmin"
    MINIO_SECRET_KEY: str = "minioadmin"
    MINIO_BUCKET_NAME: str = "admission-documents"
    MINIO_REGION: str = "us-east-1"
    MINIO_SECURE: bool = False
    PRESIGNED_URL_EXPIRES_HOURS: int = 1

    # Document retrieval & artifacts
    FILE_BASE_URL: str = ""
    DOCUMENT_FETCH_TIMEOUT_SECONDS: float = 90.0
    ARTIFACT_PREFIX: str = "artifacts"

    # Workflow
    WORKFLOW_MAX_RETRIES: int = 3
    NOTIFICATIONS_ENABLED: bool = True

    # Redis & Celery
    REDIS_PASSWORD: str = "<your-redis-password>"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @field_validator("ALLOWED_HOSTS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
