"""Rate limiting configuration for the public token endpoints."""

import logging
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from taxdesk.core.config import settings

logger = logging.getLogger(__name__)

# Falls back to in-memory if Redis is not available (dev/test mode)
REDIS_URL = os.getenv("REDIS_URL", "")
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)
PUBLIC_LIMIT = (
    "10000/minute"
    if IS_TESTING or settings.RATE_LIMIT_PUBLIC <= 0
    else f"{settings.RATE_LIMIT_PUBLIC}/minute"
)


def _build_limiter() -> Limiter:
    if IS_TESTING or not REDIS_URL:
        return Limiter(
            key_func=get_remote_address,
            storage_uri="memory://",
            default_limits=DEFAULT_LIMITS,
        )
    try:
        import redis

        r = redis.from_url(REDIS_URL, socket_connect_timeout=1)
        r.ping()
        return Limiter(
            key_func=get_remote_address,
            storage_uri=REDIS_URL,
            default_limits=DEFAULT_LIMITS,
        )
    except Exception as e:
        logger.warning("Redis unavailable for rate limiting, using in-memory: %s", e)
        return Limiter(
            key_func=get_remote_address,
            storage_uri="memory://",
            default_limits=DEFAULT_LIMITS,
        )


limiter = _build_limiter()
