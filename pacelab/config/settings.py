import os
from pathlib import Path

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    SQLite is for local development only. Set DATABASE_URL to a PostgreSQL
    connection string in production.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info(f"Using DATABASE_URL from environment: {db_url}")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "pacelab.db"
    abs_path = db_path.resolve()
    db_url = f"sqlite:///{abs_path}"
    logger.warning(f"Using SQLite database (LOCAL DEV ONLY): {db_url}")
    return db_url


class Settings(BaseSettings):
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str = Field(default="", validation_alias="LOG_FILE")
    log_json: bool = Field(default=False, validation_alias="LOG_JSON", description="Write log records as JSON lines")

    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    openai_base_url: str = Field(
        default="",
        validation_alias="OPENAI_BASE_URL",
        description="Base URL for an OpenAI-compatible provider (e.g. Groq). Empty uses OpenAI.",
    )
    decision_model: str = Field(default="gpt-4o-mini", validation_alias="DECISION_MODEL")
    decision_capability: str = Field(
        default="llm",
        validation_alias="DECISION_CAPABILITY",
        description="Which decision capability to use: 'llm' or 'heuristic'",
    )
    decision_timeout_seconds: float = Field(default=30.0, validation_alias="DECISION_TIMEOUT_SECONDS")

    openweather_api_key: str = Field(default="", validation_alias="OPENWEATHER_API_KEY")
    weather_enabled: bool = Field(default=True, validation_alias="WEATHER_ENABLED")
    default_latitude: float | None = Field(default=None, validation_alias="DEFAULT_LATITUDE")
    default_longitude: float | None = Field(default=None, validation_alias="DEFAULT_LONGITUDE")

    auth_secret_key: str = Field(default="", validation_alias="AUTH_SECRET_KEY")
    auth_algorithm: str = Field(default="HS256", validation_alias="AUTH_ALGORITHM")
    auth_token_expire_days: int = Field(default=30, validation_alias="AUTH_TOKEN_EXPIRE_DAYS")
    auth_issuer: str = Field(default="pacelab", validation_alias="AUTH_ISSUER")

    adaptation_scheduler_enabled: bool = Field(
        default=True,
        validation_alias="ADAPTATION_SCHEDULER_ENABLED",
        description="Run the weekly adaptation loop from the in-process scheduler",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

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

    @field_validator("decision_capability")
    @classmethod
    def validate_decision_capability(cls, value: str) -> str:
        """Validate the decision capability name."""
        lower_value = value.lower()
        if lower_value not in {"llm", "heuristic"}:
            logger.warning(f"Invalid DECISION_CAPABILITY '{value}'. Valid values are: llm, heuristic. Defaulting to llm.")
            return "llm"
        return lower_value

    @field_validator("decision_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        """Timeouts must be positive."""
        if value <= 0:
            raise ValueError("DECISION_TIMEOUT_SECONDS must be positive")
        return value


settings = Settings()
