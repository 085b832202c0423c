"""
CONFIG - Environment-driven settings

Values come from the process environment, optionally seeded from a .env file.
The safety constants (turn limit, time limits, scoring weights) are NOT
configurable; they live next to the code that enforces them.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    api_key: str
    default_region: str
    commit_retries: int
    commit_retry_base_delay: float
    lock_timeout: float
    log_level: str


def load_settings() -> Settings:
    """Read settings from the environment (call again after changing env vars)"""
    return Settings(
        api_key=os.getenv("SIXSTEPS_API_KEY", "mySecretKey123"),  # Default for testing
        default_region=os.getenv("SIXSTEPS_DEFAULT_REGION", "uk").lower(),
        commit_retries=max(1, _env_int("SIXSTEPS_COMMIT_RETRIES", 3)),
        commit_retry_base_delay=_env_float("SIXSTEPS_COMMIT_RETRY_BASE_DELAY", 0.05),
        lock_timeout=_env_float("SIXSTEPS_LOCK_TIMEOUT", 10.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


settings = load_settings()
