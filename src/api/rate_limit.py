"""
Shared slowapi limiter

Routes decorated with @limiter.limit(...) use their own limit; every other
route falls under API_RATE_LIMIT (per IP) through SlowAPIMiddleware.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from config.config import API_RATE_LIMIT, RATE_LIMIT_ENABLED

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[API_RATE_LIMIT],
    storage_uri="memory://",  # In-memory storage (one process)
    enabled=RATE_LIMIT_ENABLED,
)
