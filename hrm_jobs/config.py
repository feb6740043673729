"""
Configuration module for HRM Jobs
"""

# Application configuration
import os
import re
from dataclasses import dataclass

def env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable"""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")

def env_int(key: str, default: int) -> int:
    """Get integer value from environment variable, falling back on bad input"""
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, "d": 86400.0}

def parse_duration(value: str) -> float:
    """
    Parse a duration string into seconds.

    Accepts plain numbers (seconds) or unit-suffixed parts that may be
    chained: "90s", "30m", "24h", "1h30m", "1d". Raises ValueError on
    anything else.
    """
    text = (value or "").strip().lower()
    if not text:
        raise ValueError("empty duration")
    try:
        return float(text)
    except ValueError:
        pass

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ValueError(f"invalid duration: {value!r}")
    return sign * total

def env_duration(key: str, default: str) -> float:
    """Get a duration in seconds from environment variable"""
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return parse_duration(default)
    try:
        return parse_duration(raw)
    except ValueError:
        return parse_duration(default)

# Database configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./hrm_jobs.db")

# API configuration
API_PREFIX = os.getenv("API_PREFIX", "/v1")
APP_PORT = int(os.getenv("APP_PORT", "8080"))

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")

# Tenant resolution
DEFAULT_TENANT = os.getenv("DEFAULT_TENANT", "")

# Job orchestration configuration
JOBS_ENABLED: bool = env_bool("JOBS_ENABLED", True)

# Job-run listing pagination
JOB_RUNS_DEFAULT_LIMIT = env_int("JOB_RUNS_DEFAULT_LIMIT", 50)
JOB_RUNS_MAX_LIMIT = env_int("JOB_RUNS_MAX_LIMIT", 500)


@dataclass(frozen=True)
class JobsSettings:
    """What the job orchestrator needs from configuration"""

    queue_capacity: int = 128
    accrual_interval: float = 24 * 3600.0  # seconds, <=0 disables
    retention_interval: float = 24 * 3600.0  # seconds, <=0 disables

    @classmethod
    def from_env(cls) -> "JobsSettings":
        # JOB_QUEUE_CAPACITY, LEAVE_ACCRUAL_INTERVAL, RETENTION_INTERVAL
        return cls(
            queue_capacity=env_int("JOB_QUEUE_CAPACITY", 128),
            accrual_interval=env_duration("LEAVE_ACCRUAL_INTERVAL", "24h"),
            retention_interval=env_duration("RETENTION_INTERVAL", "24h"),
        )
