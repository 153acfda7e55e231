"""
slowapi rate limiter for the public auth routes.

The decorators in auth/router.py bind to this instance at import time, so it
is created at module level; ``create_app`` switches it on or off from
Settings.rate_limit_enabled.

Storage: RATE_LIMIT_STORAGE_URI (e.g. redis://host:6379/0 when several
workers must share counters), in-memory otherwise.
"""
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
)
