"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/v1/auth.py (to apply per-route limits with @limiter.limit()).

A single shared instance means every route shares the same in-memory counter
store. Instantiating it per module would give each module an isolated
counter and limits would never trigger.

The per-route limit string is read from Settings at request time, so
LOGIN_RATE_LIMIT can be changed without touching code.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().rate_limit_enabled,
)


def login_rate_limit() -> str:
    return get_settings().login_rate_limit
