# geojson_api/config.py

from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, loaded from the environment and an optional .env file."""

    APP_ENV: str = Field(default="development")
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=4000)

    STORAGE_DIR: Path = Field(default=Path("data/uploads"), description="Directory holding stored documents")
    MAX_UPLOAD_BYTES: int = Field(default=10 * 1024 * 1024, gt=0, description="Upload size ceiling in bytes")
    CACHE_MAX_AGE: int = Field(default=300, ge=0, description="Cache-Control max-age for stored documents")

    CORS_ORIGINS: List[str] = Field(default=["*"])
    LOG_LEVEL: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")
