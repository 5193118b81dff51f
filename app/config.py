"""Application configuration using Pydantic Settings."""
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "Late Arrival Tracker"
    debug: bool = False

    # School
    school_name: str = "SVCET"
    timezone: str = "Asia/Kolkata"  # dates/times shown to staff and day/month buckets

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "late_tracker"

    # Analytics
    late_warning_threshold: int = 3  # in-period count above this is flagged
    top_latecomers_limit: int = 10

    # Batch strength: year of study -> batch label, JSON in the environment
    batch_labels: dict[int, str] = {1: "2025-29", 2: "2024-28", 3: "2023-27", 4: "2022-26"}
    department_batch_labels: dict[str, dict[int, str]] = {"mba": {1: "2026-27", 2: "2025-26"}}

    # CORS (comma-separated origins, e.g. "https://late.svcet.edu,http://localhost:9002")
    cors_origins: str = "http://localhost:9002"

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value!r}")
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


settings = Settings()
