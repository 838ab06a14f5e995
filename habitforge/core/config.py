import logging
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Optional[str] = None  # "json" | "pretty"; default follows ENV

    # Database (unset => in-memory stores)
    DATABASE_URL: Optional[str] = None

    # Single authoritative clock for "today"
    APP_TIMEZONE: str = "UTC"

    # Experience awards
    BASE_EXPERIENCE_POINTS: int = 10
    STREAK_MULTIPLIER: float = 0.1

    # Level curve
    MAX_LEVEL_CAP: int = 100
    LEVEL_EXPERIENCE_BASE: int = 10
    LEVEL_EXPERIENCE_MULTIPLIER: float = 1.05
    MAX_EXP_PER_LEVEL: int = 250

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate engine configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("habitforge")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    positive_keys = [
        "BASE_EXPERIENCE_POINTS",
        "MAX_LEVEL_CAP",
        "LEVEL_EXPERIENCE_BASE",
        "MAX_EXP_PER_LEVEL",
    ]
    problems = [f"{key} must be positive" for key in positive_keys if getattr(cfg, key) <= 0]
    if cfg.STREAK_MULTIPLIER < 0:
        problems.append("STREAK_MULTIPLIER must not be negative")
    if cfg.LEVEL_EXPERIENCE_MULTIPLIER < 1:
        problems.append("LEVEL_EXPERIENCE_MULTIPLIER must be >= 1")

    try:
        ZoneInfo(cfg.APP_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        problems.append(f"APP_TIMEZONE {cfg.APP_TIMEZONE!r} is not a known timezone")

    if problems:
        message = f"Invalid configuration: {'; '.join(problems)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
