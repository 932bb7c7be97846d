from typing import Literal

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    coach_api_url: str = Field(
        default="http://localhost:8000",  # Default for local dev; MUST be set to the coach server URL in production
        validation_alias="COACH_API_URL",
        description="Base URL of the coach server (turn and undo endpoints)",
    )
    coach_max_messages: int = Field(
        default=24,
        validation_alias="COACH_MAX_MESSAGES",
        description="Maximum number of messages kept in the conversation window",
    )
    coach_request_timeout_seconds: float = Field(
        default=60.0,
        validation_alias="COACH_REQUEST_TIMEOUT_SECONDS",
        description="HTTP timeout for coach turn and undo requests",
    )
    coach_turn_timeout_seconds: float = Field(
        default=60.0,
        validation_alias="COACH_TURN_TIMEOUT_SECONDS",
        description="Server-side budget for a single planner turn",
    )
    coach_default_unit: Literal["lbs", "kg"] = Field(default="lbs", validation_alias="COACH_DEFAULT_UNIT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE", description="Optional rotating log file path")
    log_json: bool = Field(default=False, validation_alias="LOG_JSON", description="Serialize stderr logs as JSON lines")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("coach_max_messages")
    @classmethod
    def validate_max_messages(cls, value: int) -> int:
        """Reject negative window sizes; 0 is allowed and keeps an empty window."""
        if value < 0:
            raise ValueError(f"COACH_MAX_MESSAGES must be >= 0, got: {value}")
        return value

    @field_validator("coach_api_url")
    @classmethod
    def validate_coach_api_url(cls, value: str) -> str:
        """Strip trailing slashes so endpoint paths can be appended safely."""
        if value and not value.startswith(("http://", "https://")):
            logger.warning(f"COACH_API_URL should start with http:// or https://, but got: {value}")
        return value.rstrip("/")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
