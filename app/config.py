"""
Configuration loaded from environment or defaults.
"""

import os
import re
from pathlib import Path


_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smh]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600}


def parse_duration(value: str) -> float:
    """
    Parse a duration such as "90", "30s", "15m" or "1h" into seconds.

    Raises:
        ValueError: If the value is not a recognised duration
    """
    match = _DURATION_RE.match(value)
    if not match:
        raise ValueError(f"invalid duration: {value!r}")
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[unit]


def get_database_url() -> str:
    """Get database URL from env or default SQLite file."""
    return os.getenv("DATABASE_URL", "") or "sqlite:///" + str(
        Path(__file__).resolve().parents[1] / "data" / "movies.db"
    )


def get_query_timeout() -> float:
    """Get per-call query deadline in seconds."""
    timeout = float(os.getenv("DB_QUERY_TIMEOUT", "3"))
    if timeout <= 0:
        raise ValueError("DB_QUERY_TIMEOUT must be positive")
    return timeout


def get_max_open_conns() -> int:
    """Get the maximum number of concurrently open connections."""
    value = int(os.getenv("DB_MAX_OPEN_CONNS", "25"))
    if value < 1:
        raise ValueError("DB_MAX_OPEN_CONNS must be positive")
    return value


def get_max_idle_conns() -> int:
    """
    Get the maximum number of idle connections kept in the pool.

    0 is accepted; the pool still keeps one connection, since QueuePool
    would read 0 as unbounded.
    """
    value = int(os.getenv("DB_MAX_IDLE_CONNS", "25"))
    if value < 0:
        raise ValueError("DB_MAX_IDLE_CONNS must be non-negative")
    return value


def get_max_idle_time() -> float:
    """Get how long (seconds) a pooled connection may live before recycling."""
    return parse_duration(os.getenv("DB_MAX_IDLE_TIME", "15m"))


def get_db_echo() -> bool:
    """Get whether SQL statements should be logged."""
    return os.getenv("DB_ECHO", "").lower() in ("1", "true", "yes", "on")


def get_log_level() -> str:
    """Get log level from env or default."""
    return os.getenv("LOG_LEVEL", "INFO").upper()
