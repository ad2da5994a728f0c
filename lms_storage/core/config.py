from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]

MIB = 1024 * 1024


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: Literal["dev", "staging", "prod"] = "dev"
    app_name: str = "LMS Storage API"
    api_prefix: str = "/api"
    debug: bool = True
    cors_allow_origins: str = "http://localhost:5173,http://localhost:3000"

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = True

    redis_url: str = "redis://localhost:6379/0"
    storage_cleanup_interval_seconds: int = Field(default=30 * 60, gt=0)

    storage_provider: Literal["s3", "supabase"] = "s3"
    storage_root_prefix: str = "LMS_Uploads"
    storage_single_ttl_seconds: int = 60 * 60
    storage_chunked_ttl_seconds: int = 2 * 60 * 60
    storage_chunk_size: int = Field(default=4 * MIB, gt=0)
    storage_max_file_size: int = Field(default=50 * MIB, gt=0)

    s3_endpoint: str = ""
    s3_region: str = "us-east-1"
    s3_bucket: str = "lms-content"
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_public_base_url: str = ""

    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_anon_key: str = ""
    supabase_bucket: str = "lms-content"

    signer_url: str = "http://localhost:8000/api/uploads/sign-lms"
    transfer_timeout_seconds: float = Field(default=60.0, gt=0)

    @property
    def cors_origins(self) -> list[str]:
        return [item.strip() for item in self.cors_allow_origins.split(",") if item.strip()]

    @property
    def s3_configured(self) -> bool:
        return bool(self.s3_bucket and self.s3_access_key and self.s3_secret_key)

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
