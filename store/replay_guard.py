"""
Replay guard: remembers consumed one-time codes so none is accepted twice.

Each consumed code is one Redis key ``otp:blacklist:<code>``. Keys are
written with ``SET NX`` so that marking a code as used and learning whether
it was already used is a single atomic round trip (:meth:`ReplayGuard.consume`).
Two concurrent verifications of the same code can therefore never both win.

Entries carry an optional TTL. A code is only time-valid for
``period * (2 * window + 1)`` seconds, so a TTL slightly above that bounds
the key space; ``ttl=None`` keeps entries forever.
"""
import logging
from typing import Optional

import redis

from store.deadline import Deadline
from store.redis_client import store_call

logger = logging.getLogger(__name__)

BLACKLIST_PREFIX = "otp:blacklist:"


def default_blacklist_ttl(period: int, window: int) -> int:
    """Lifetime of a blacklist entry: the whole validity span plus one period."""
    return period * (2 * window + 1) + period


class ReplayGuard:
    """
    Blacklist of already-accepted codes.

    Example usage:
        guard = ReplayGuard(redis_client, ttl=120)

        if not guard.consume(code, deadline):
            reject_as_replay()

    Every operation raises StoreUnavailable when Redis cannot be reached. A
    failed check is never reported as "not blacklisted" and a failed insert
    is never reported as "blacklisted".

    Keys hold the code only, so the blacklist is shared by all principals:
    once any user consumed a code, the same digits are rejected for everyone
    until the entry expires. With 6 digits two users can hit the same code
    in one window; raise OTP_DIGITS (10 by default) to make that negligible.
    """

    def __init__(self, client: redis.Redis, ttl: Optional[int] = None, prefix: str = BLACKLIST_PREFIX):
        if ttl is not None and ttl <= 0:
            ttl = None
        self.client = client
        self.ttl = ttl
        self.prefix = prefix

    def _key(self, code: str) -> str:
        return f"{self.prefix}{code}"

    def check_blacklist(self, code: str, deadline: Optional[Deadline] = None) -> bool:
        """True if ``code`` was previously accepted and its entry still lives."""
        with store_call("EXISTS", deadline):
            return bool(self.client.exists(self._key(code)))

    def blacklist(self, code: str, deadline: Optional[Deadline] = None) -> None:
        """Mark ``code`` as consumed. Blacklisting an existing code is a no-op."""
        self.consume(code, deadline)

    def release(self, code: str, deadline: Optional[Deadline] = None) -> None:
        """Forget a code this process consumed but could not turn into a session."""
        with store_call("DEL", deadline):
            self.client.delete(self._key(code))
        logger.info("Released consumed code after a failed session write")

    def consume(self, code: str, deadline: Optional[Deadline] = None) -> bool:
        """
        Atomically insert ``code`` if it is absent.

        Returns:
            True if this call consumed the code, False if it was already
            blacklisted (a replay).
        """
        with store_call("SET NX", deadline):
            inserted = self.client.set(self._key(code), "1", nx=True, ex=self.ttl)
        if not inserted:
            logger.debug("Code already present in blacklist")
        return bool(inserted)
