import logging
import sys
from functools import lru_cache

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App config
    CORS_ORIGINS: list[str] = ["http://localhost:4200"]
    DEBUG: bool = False

    # Dice
    DICE_MIN_VALUE: int = 1
    DICE_MAX_VALUE: int = 6

    # Turn timers (milliseconds)
    DECISION_DURATION_MS: int = 30000
    DICE_ANIMATION_DELAY_MS: int = 1500
    DECISION_CHECK_INTERVAL_MS: int = 500

    # Watchdog
    WATCHDOG_POLL_INTERVAL_MS: int = 500
    WATCHDOG_MAX_EVENTS_PER_GAME: int = 100
    WATCHDOG_EVENT_TTL_SECONDS: int = 3600
    WATCHDOG_CLEANUP_INTERVAL_SECONDS: int = 300

    # House rules
    END_PATH_ADVANCE: bool = False

    @field_validator("DICE_MIN_VALUE", "DICE_MAX_VALUE")
    @classmethod
    def validate_dice_face(cls, v: int) -> int:
        if not 1 <= v <= 6:
            raise ValueError("Dice values must be between 1 and 6")
        return v

    @field_validator("DICE_MAX_VALUE")
    @classmethod
    def validate_dice_range(cls, v: int, info: ValidationInfo) -> int:
        minimum = info.data.get("DICE_MIN_VALUE")
        if minimum is not None and v < minimum:
            raise ValueError("DICE_MAX_VALUE must be >= DICE_MIN_VALUE")
        return v

    @field_validator(
        "DECISION_DURATION_MS",
        "DICE_ANIMATION_DELAY_MS",
        "DECISION_CHECK_INTERVAL_MS",
        "WATCHDOG_POLL_INTERVAL_MS",
        "WATCHDOG_MAX_EVENTS_PER_GAME",
        "WATCHDOG_EVENT_TTL_SECONDS",
        "WATCHDOG_CLEANUP_INTERVAL_SECONDS",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Durations, intervals and limits must be positive")
        return v


def configure_logging(debug: bool = False) -> None:
    """Configure logging for the application."""
    log_level = logging.DEBUG if debug else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    configure_logging(settings.DEBUG)
    logger.info("Settings loaded successfully")
    logger.debug(
        "Decision window: %dms, dice animation: %dms, watchdog poll: %dms",
        settings.DECISION_DURATION_MS,
        settings.DICE_ANIMATION_DELAY_MS,
        settings.WATCHDOG_POLL_INTERVAL_MS,
    )
    return settings
