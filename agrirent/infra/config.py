import json
from functools import lru_cache
from typing import Annotated, Any, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    llm_provider: str = Field(default="openai", validation_alias="LLM_PROVIDER")
    openai_api_key: Optional[str] = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_api_base: Optional[str] = Field(
        default=None, validation_alias="OPENAI_API_BASE"
    )
    pricing_model: str = Field(default="gpt-4.1-mini", validation_alias="PRICING_MODEL")
    pricing_temperature: float = Field(
        default=0.2, validation_alias="PRICING_TEMPERATURE"
    )
    pricing_timeout_seconds: float = Field(
        default=15.0, validation_alias="PRICING_TIMEOUT_SECONDS"
    )

    # Capacity policy. Inferred from field practice, not physics.
    drone_acres_per_hour: float = Field(
        default=5.0, validation_alias="DRONE_ACRES_PER_HOUR"
    )
    morning_window_hours: float = Field(
        default=3.0, validation_alias="MORNING_WINDOW_HOURS"
    )
    evening_window_hours: float = Field(
        default=3.0, validation_alias="EVENING_WINDOW_HOURS"
    )
    anytime_window_hours: float = Field(
        default=6.0, validation_alias="ANYTIME_WINDOW_HOURS"
    )
    # accepts "drone,sprayer" as well as a JSON list
    capacity_checked_keywords: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["drone"],
        validation_alias="CAPACITY_CHECKED_KEYWORDS",
    )

    match_category_weight: float = Field(
        default=0.5, validation_alias="MATCH_CATEGORY_WEIGHT"
    )
    match_proximity_weight: float = Field(
        default=0.3, validation_alias="MATCH_PROXIMITY_WEIGHT"
    )
    match_capacity_weight: float = Field(
        default=0.2, validation_alias="MATCH_CAPACITY_WEIGHT"
    )
    match_district_only_fit: float = Field(
        default=0.7, validation_alias="MATCH_DISTRICT_ONLY_FIT"
    )
    match_capacity_decay_multiple: float = Field(
        default=3.0, validation_alias="MATCH_CAPACITY_DECAY_MULTIPLE"
    )
    match_max_workers: int = Field(default=4, validation_alias="MATCH_MAX_WORKERS")

    document_store: str = Field(default="sqlite", validation_alias="DOCUMENT_STORE")
    document_store_path: Optional[str] = Field(
        default=None, validation_alias="DOCUMENT_STORE_PATH"
    )
    booking_cas_retries: int = Field(default=3, validation_alias="BOOKING_CAS_RETRIES")

    log_path: Optional[str] = Field(default=None, validation_alias="LOG_PATH")
    fastapi_port: int = Field(default=8000, validation_alias="FASTAPI_PORT")

    @field_validator("llm_provider", "document_store", mode="after")
    @classmethod
    def normalize_provider(cls, value: str) -> str:
        return value.lower() if value else value

    @field_validator("capacity_checked_keywords", mode="before")
    @classmethod
    def split_keywords(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        text = value.strip()
        if text.startswith("["):
            return json.loads(text)
        return text.split(",")

    @field_validator("capacity_checked_keywords", mode="after")
    @classmethod
    def normalize_keywords(cls, value: List[str]) -> List[str]:
        return [item.strip().lower() for item in value if item and item.strip()]

    @field_validator("match_max_workers", "booking_cas_retries", mode="after")
    @classmethod
    def at_least_one(cls, value: int) -> int:
        return max(1, int(value))


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    return AppConfig()
