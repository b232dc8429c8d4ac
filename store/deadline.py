"""Request-scoped deadline passed explicitly to every store call."""

import time
from dataclasses import dataclass
from typing import Optional

from core.errors import DeadlineExceeded


@dataclass(frozen=True)
class Deadline:
    """
    Absolute point in time (``time.monotonic()`` clock) after which no new
    store round trip may be started.

    Deadlines are created at the request boundary and handed down; nothing
    in this package keeps one in a module-level variable.
    """

    expires_at: float

    @classmethod
    def from_timeout(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + seconds)

    def remaining(self) -> float:
        return max(self.expires_at - time.monotonic(), 0.0)

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self, operation: str) -> None:
        if self.expired:
            raise DeadlineExceeded(f"Deadline exceeded before '{operation}'")


def check_deadline(deadline: Optional[Deadline], operation: str) -> None:
    if deadline is not None:
        deadline.check(operation)
