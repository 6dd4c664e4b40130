from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sources_file: Path = Field(
        default=Path("config/sources.yaml"), validation_alias="INGEST_SOURCES_FILE"
    )
    output_dir: Path = Field(
        default=Path("client/src/data"), validation_alias="INGEST_OUTPUT_DIR"
    )
    events_filename: str = Field(
        default="events.json", validation_alias="INGEST_EVENTS_FILENAME"
    )
    upcoming_filename: str = Field(
        default="upcoming-12mo.json", validation_alias="INGEST_UPCOMING_FILENAME"
    )

    concurrency: int = Field(default=4, ge=1, validation_alias="INGEST_CONCURRENCY")
    user_agent: str = Field(
        default="urnavi-bot/0.1 (+https://urnavi.com)",
        validation_alias="INGEST_USER_AGENT",
    )
    source_timeout_seconds: float = Field(
        default=60.0, gt=0, validation_alias="INGEST_SOURCE_TIMEOUT_SECONDS"
    )
    horizon_months: int = Field(
        default=12, ge=0, validation_alias="INGEST_HORIZON_MONTHS"
    )

    log_level: str = Field(default="INFO", validation_alias="INGEST_LOG_LEVEL")

    @property
    def events_path(self) -> Path:
        return self.output_dir / self.events_filename

    @property
    def upcoming_path(self) -> Path:
        return self.output_dir / self.upcoming_filename
