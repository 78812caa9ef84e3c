"""Rate limiting configuration for the ClientFlow API."""

import logging
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from clientflow.core.config import settings

# Redis-backed for multi-process deployments; in-memory in dev/test
REDIS_URL = os.getenv("REDIS_URL", "")
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)

if IS_TESTING or not REDIS_URL:
    limiter = Limiter(
        key_func=get_remote_address,
        storage_uri="memory://",
        default_limits=DEFAULT_LIMITS,
    )
else:
    try:
        import redis

        # Test connection upfront
        r = redis.from_url(REDIS_URL, socket_connect_timeout=1)
        r.ping()
        limiter = Limiter(
            key_func=get_remote_address,
            storage_uri=REDIS_URL,
            default_limits=DEFAULT_LIMITS,
        )
    except Exception as e:
        logging.warning(f"Redis unavailable for rate limiting, using in-memory: {e}")
        limiter = Limiter(
            key_func=get_remote_address,
            storage_uri="memory://",
            default_limits=DEFAULT_LIMITS,
        )
