"""
Core configuration for the report generator.
Uses Pydantic Settings for environment variable management.
"""
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_empty_env_values(cls, data):
        if not isinstance(data, dict):
            return data
        # Deployment tooling sometimes injects empty-string env vars.
        # Treat them as "unset" so typed fields (bool/int/float) don't crash on startup.
        return {key: value for key, value in data.items() if value != ""}

    # Logging
    LOG_LEVEL: str = "info"

    # Database
    DATABASE_URL: str = "postgresql://localhost:5432/reportgen"

    # Report execution image (the jupyter image the generator workflow runs in).
    REPORT_DOCKER_LOCATION: str = "reportgen/jupyter-report:latest"

    # Where assembled report notebooks are uploaded.
    # gcs: REPORT_LOCATION must be a gs:// prefix, e.g. "gs://my-bucket/reports"
    # local: files land under REPORT_LOCAL_STORAGE_DIR (dev only, the job engine must share the disk)
    REPORT_STORAGE_BACKEND: str = "gcs"  # gcs | local
    REPORT_LOCATION: str = "gs://reportgen-reports/reports"
    REPORT_LOCAL_STORAGE_DIR: str = "output/report_templates"

    # GCS is reached through its S3-interoperability endpoint with HMAC keys.
    GCS_INTEROP_ENDPOINT: str = "https://storage.googleapis.com"
    GCS_HMAC_ACCESS_KEY_ID: str = ""
    GCS_HMAC_SECRET: str = ""

    # Job engine (Cromwell) connection.
    JOB_ENGINE_ADDRESS: str = "http://localhost:8000"
    JOB_ENGINE_API_VERSION: str = "v1"
    JOB_ENGINE_TIMEOUT_SECONDS: float = 30.0
    # Optional URL of an alternative generator workflow; the packaged WDL is used when empty.
    REPORT_GENERATOR_WDL_URL: str = ""

    # Runtime attributes copied from a report config are emitted bare ("cpu") by default.
    # Set true to emit them under the generator workflow name ("<workflow>.cpu") instead.
    REPORT_NAMESPACE_RUNTIME_ATTRS: bool = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
