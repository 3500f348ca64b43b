"""
Configuration settings for legacy-export.

Uses Pydantic Settings to load environment variables for the bridge connection,
pacing of the extraction loop, export layout and logging.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Bridge database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("legacy_bridge", alias="DB_NAME")
    db_connect_timeout_s: int = Field(30, alias="DB_CONNECT_TIMEOUT_S")
    db_statement_timeout_ms: int = Field(300_000, alias="DB_STATEMENT_TIMEOUT_MS")

    # Source addressing
    source_schema: str = Field("legacy", alias="SOURCE_SCHEMA")
    source_identifier: Optional[str] = Field(None, alias="SOURCE_IDENTIFIER")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Extraction pacing and streaming
    sleep_between_entities_ms: int = Field(500, alias="SLEEP_BETWEEN_ENTITIES_MS", ge=0)
    max_rows_per_segment: int = Field(1_000_000, alias="MAX_ROWS_PER_SEGMENT", gt=0)
    fetch_batch_size: int = Field(1_000, alias="FETCH_BATCH_SIZE", gt=0)
    stream_high_water: int = Field(10_000, alias="STREAM_HIGH_WATER", gt=0)
    progress_interval_rows: int = Field(1_000, alias="PROGRESS_INTERVAL_ROWS", gt=0)

    # Output
    exports_dir: Path = Field(Path("./exports"), alias="EXPORTS_DIR")
    manifest_path: Path = Field(Path("./manifest.json"), alias="MANIFEST_PATH")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def source_name(self) -> str:
        """Identifier recorded in the manifest for the extracted source."""
        return self.source_identifier or self.db_name


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
