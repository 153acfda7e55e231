from carelink_shared.database.engine import (
    AsyncSessionFactory,
    Base,
    get_async_engine,
    get_async_session_factory,
    get_session,
)
from carelink_shared.database.types import UTCDateTime

__all__ = [
    "AsyncSessionFactory",
    "Base",
    "UTCDateTime",
    "get_async_engine",
    "get_async_session_factory",
    "get_session",
]
