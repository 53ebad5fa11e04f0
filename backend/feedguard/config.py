"""
Pipeline constants with environment variable support.
"""
from __future__ import annotations

import os
from typing import Dict


def _get_env_float(key: str, default: float) -> float:
    """Get float value from environment variable with fallback."""
    try:
        return float(os.getenv(key, default))
    except (ValueError, TypeError):
        return default


def _get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable with fallback."""
    try:
        return int(os.getenv(key, default))
    except (ValueError, TypeError):
        return default


# Queue Settings
MAX_PENDING: int = _get_env_int("MAX_PENDING", 200)

# Scheduling Settings (milliseconds)
DEFAULT_BATCH_SIZE: int = _get_env_int("BATCH_SIZE", 5)
DEFAULT_TICK_INTERVAL_MS: int = _get_env_int("TICK_INTERVAL_MS", 20_000)
CONTINUATION_DELAY_MS: int = _get_env_int("CONTINUATION_DELAY_MS", 250)
ENQUEUE_DELAY_MS: int = _get_env_int("ENQUEUE_DELAY_MS", 0)
SCHEDULE_TOLERANCE_MS: int = _get_env_int("SCHEDULE_TOLERANCE_MS", 10)

# Local Classifier Scoring
# score = clamp(BASE + len(match) * PER_CHAR, MIN, MAX)
LOCAL_SCORE_BASE: int = 10
LOCAL_SCORE_PER_CHAR: int = 6
LOCAL_SCORE_MIN: int = 12
LOCAL_SCORE_MAX: int = 85

# Lexicon Diagnostics
LEXICON_SAMPLE_SIZE: int = _get_env_int("LEXICON_SAMPLE_SIZE", 10)

# Remote Classifier Settings
REMOTE_MAX_TAGS: int = 5
REMOTE_MAX_TAG_LENGTH: int = 40
REMOTE_TEXT_LIMIT: int = _get_env_int("REMOTE_TEXT_LIMIT", 600)
DEFAULT_REMOTE_MODEL: str = os.getenv("REMOTE_MODEL", "gpt-4o-mini")
DEFAULT_REMOTE_TEMPERATURE: float = _get_env_float("REMOTE_TEMPERATURE", 0.2)

# Runtime config clamp ranges: name -> (min, max)
RUNTIME_LIMITS: Dict[str, tuple] = {
    "riskThreshold": (0, 100),
    "batchSize": (1, 50),
    "tickIntervalMs": (1_000, 600_000),
    "bootMinShowMs": (0, 12_000),
    "bootMaxShowMs": (500, 20_000),
    "temperature": (0.0, 2.0),
    "maxOutputTokens": (32, 2_000),
    "candidateThreshold": (0, 100),
}

# Logging Configuration
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT: str = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
