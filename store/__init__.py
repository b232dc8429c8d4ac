"""
Redis-backed state for the second factor: replay guard and session store.
"""
from .deadline import Deadline
from .redis_client import get_redis_client
from .replay_guard import ReplayGuard, default_blacklist_ttl
from .session_store import SessionRecord, SessionStore, generate_session_id

__all__ = [
    "Deadline",
    "get_redis_client",
    "ReplayGuard",
    "default_blacklist_ttl",
    "SessionRecord",
    "SessionStore",
    "generate_session_id",
]
