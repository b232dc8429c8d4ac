"""
Pytest configuration and shared fixtures for the fullstack-otp tests.

This module provides:
- A controllable clock
- An in-memory Redis double (strings with TTL, SET NX, SCAN paging)
- A Flask app / test client wired to both
"""
import base64
import fnmatch

import pytest

from backend.app import create_app
from backend.config import TestingConfig
from backend.models import save_user

REFERENCE_PHRASE = "The quick brown fox jumps over the lazy dog."
REFERENCE_SECRET = base64.b32encode(REFERENCE_PHRASE.encode()).decode()

# 2020-09-13T12:26:40Z, 10 seconds into its 30 second period
T0 = 1_600_000_000


# ============================================
# Clock / Redis doubles
# ============================================

class FakeClock:
    def __init__(self, now: float = T0):
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MockRedisClient:
    """
    Subset of redis.Redis used by the stores, with decode_responses=True
    semantics. Expiry is evaluated against ``clock``.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.store = {}
        self.expiry = {}
        self.scan_calls = []

    def _alive(self, key) -> bool:
        expires_at = self.expiry.get(key)
        if expires_at is not None and self.clock() >= expires_at:
            self.store.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.store

    def get(self, key):
        return self.store.get(key) if self._alive(key) else None

    def set(self, name, value, ex=None, nx=False):
        if nx and self._alive(name):
            return None
        self.store[name] = str(value)
        self.expiry.pop(name, None)
        if ex:
            self.expiry[name] = self.clock() + ex
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self._alive(key):
                del self.store[key]
                self.expiry.pop(key, None)
                removed += 1
        return removed

    def exists(self, *keys):
        return sum(1 for key in keys if self._alive(key))

    def ttl(self, key):
        if not self._alive(key):
            return -2
        if key not in self.expiry:
            return -1
        return int(self.expiry[key] - self.clock())

    def scan(self, cursor=0, match=None, count=None):
        self.scan_calls.append(cursor)
        keys = sorted(k for k in list(self.store) if self._alive(k))
        if match:
            keys = [k for k in keys if fnmatch.fnmatchcase(k, match)]
        count = count or 10
        page = keys[cursor:cursor + count]
        next_cursor = cursor + count
        if next_cursor >= len(keys):
            next_cursor = 0
        return next_cursor, page


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_redis_client(clock):
    return MockRedisClient(clock)


@pytest.fixture
def users_file(tmp_path):
    path = tmp_path / "users.json"
    save_user("kaede", "kaede-password", path=str(path), secret=REFERENCE_SECRET)
    return str(path)


@pytest.fixture
def app(users_file, mock_redis_client, clock):
    config = type("Config", (TestingConfig,), {"USERS_FILE": users_file})
    return create_app(config, redis_client=mock_redis_client, clock=clock)


@pytest.fixture
def client(app):
    return app.test_client()
