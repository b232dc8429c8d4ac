"""
Session store: opaque session token -> principal, with Redis-enforced expiry.

Keys are ``sess:<session id>`` string keys written with ``SET EX``. Expiry is
entirely Redis' job; an expired session is indistinguishable from one that
never existed. There is no delete operation.
"""
import base64
import logging
import os
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

import redis

from core.errors import RandomSourceFailure
from store.deadline import Deadline
from store.redis_client import store_call

logger = logging.getLogger(__name__)

SESSION_PREFIX = "sess:"
DEFAULT_SESSION_TTL = 15 * 60
DEFAULT_SESSION_ID_BYTES = 32
SCAN_PAGE_SIZE = 10


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    principal_id: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def generate_session_id(number_of_bytes: int = DEFAULT_SESSION_ID_BYTES) -> str:
    """
    Generate a URL-safe, base64-encoded token from the OS secure random source.

    32 bytes (256 bits) is the default.

    Raises:
        RandomSourceFailure: if ``os.urandom`` cannot deliver. No weaker
            source is ever used in its place.
    """
    if number_of_bytes <= 0:
        raise ValueError("number_of_bytes must be positive")
    try:
        raw = os.urandom(number_of_bytes)
    except (OSError, NotImplementedError) as e:
        raise RandomSourceFailure("Secure random source unavailable") from e
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


class SessionStore:
    """
    Redis-backed session registry.

    Example usage:
        sessions = SessionStore(redis_client, ttl=900)

        session_id = generate_session_id()
        sessions.set(session_id, "alice")
        sessions.get(session_id)   # -> "alice", or None once expired
        sessions.all()             # -> [SessionRecord(...), ...]

    All methods raise StoreUnavailable when Redis is unreachable.
    """

    def __init__(
        self,
        client: redis.Redis,
        ttl: int = DEFAULT_SESSION_TTL,
        prefix: str = SESSION_PREFIX,
        scan_count: int = SCAN_PAGE_SIZE,
    ):
        if ttl <= 0:
            raise ValueError("Session TTL must be positive")
        self.client = client
        self.ttl = ttl
        self.prefix = prefix
        self.scan_count = scan_count

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    def set(self, session_id: str, principal_id: str, deadline: Optional[Deadline] = None) -> None:
        """Bind ``session_id`` to ``principal_id`` for ``ttl`` seconds from now."""
        with store_call("SET", deadline):
            self.client.set(self._key(session_id), principal_id, ex=self.ttl)
        logger.info("Session created for principal %s", principal_id)

    def get(self, session_id: str, deadline: Optional[Deadline] = None) -> Optional[str]:
        """
        Get the principal bound to ``session_id``.

        Returns:
            The principal, or None if the session does not exist or expired.
        """
        with store_call("GET", deadline):
            return self.client.get(self._key(session_id))

    def all(self, deadline: Optional[Deadline] = None) -> List[SessionRecord]:
        """
        List every live session.

        Keys are collected with cursor-based SCAN until the cursor returns to
        0, then each one is resolved with GET. Any failure aborts the whole
        listing. Keys that expire between the scan and the GET are left out.
        The result is not a snapshot: sessions created or expiring during the
        scan may or may not appear.
        """
        keys: List[str] = []
        seen = set()
        cursor = 0
        while True:
            with store_call("SCAN", deadline):
                cursor, page = self.client.scan(cursor=cursor, match=f"{self.prefix}*", count=self.scan_count)
            for key in page:
                # SCAN may return a key more than once
                if key not in seen:
                    seen.add(key)
                    keys.append(key)
            if int(cursor) == 0:
                break

        records = []
        for key in keys:
            with store_call("GET", deadline):
                principal = self.client.get(key)
            if principal is None:
                continue
            records.append(SessionRecord(key[len(self.prefix):], principal))
        return records
