import os
from typing import Optional

import redis
from dotenv import load_dotenv

load_dotenv()

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

# from_url does not connect; the first command does
_redis: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    """Get the shared Redis client instance."""
    global _redis
    if _redis is None:
        _redis = redis.Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis


def env_float(name: str, default: Optional[float] = None) -> Optional[float]:
    """Read a numeric setting from the environment; blank means unset."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    return float(value)
