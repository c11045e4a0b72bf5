from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runtime configuration for the habit coach engine.

    Scoring thresholds are not configurable here; they live in
    habitcoach.utils.constants.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # narrative backend, optional: without a key the template fallbacks are used
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: Optional[str] = Field(default=None, alias="OPENAI_BASE_URL")
    model: str = Field(default="gpt-4.1", alias="HABITCOACH_MODEL")
    temperature: float = Field(default=0.5, alias="HABITCOACH_TEMPERATURE")

    narrative_timeout_seconds: float = Field(default=8.0, gt=0, alias="HABITCOACH_NARRATIVE_TIMEOUT")
    max_parallel_narratives: int = Field(default=4, ge=1, alias="HABITCOACH_MAX_PARALLEL_NARRATIVES")

    log_level: str = Field(default="INFO", alias="HABITCOACH_LOG_LEVEL")
    log_json: bool = Field(default=False, alias="HABITCOACH_LOG_JSON")

    timezone: str = Field(default="UTC", alias="HABITCOACH_TIMEZONE")

    @property
    def narrative_enabled(self) -> bool:
        return bool(self.openai_api_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
