"""
Flask configuration objects.

Every value can be overridden through an environment variable of the same
name. Loaded with ``app.config.from_object(...)`` in ``backend.app``.
"""
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return default if value in (None, "") else int(value)


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "fullstack-otp-dev-key")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Redis
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", "5"))
    REQUEST_DEADLINE_SECONDS = float(os.getenv("REQUEST_DEADLINE_SECONDS", "5"))

    # TOTP
    OTP_PERIOD = _env_int("OTP_PERIOD", 30)
    OTP_DIGITS = _env_int("OTP_DIGITS", 10)
    OTP_ALGORITHM = os.getenv("OTP_ALGORITHM", "SHA512")
    OTP_WINDOW = _env_int("OTP_WINDOW", 1)
    OTP_ISSUER = os.getenv("OTP_ISSUER", "Fullstack OTP")
    # None -> derived from period and window; 0 -> entries never expire
    BLACKLIST_TTL_SECONDS = None if os.getenv("BLACKLIST_TTL_SECONDS") in (None, "") \
        else int(os.getenv("BLACKLIST_TTL_SECONDS"))

    # Sessions
    SESSION_TTL_SECONDS = _env_int("SESSION_TTL_SECONDS", 15 * 60)
    SESSION_ID_BYTES = _env_int("SESSION_ID_BYTES", 32)
    AUTH_COOKIE_NAME = "sess"
    AUTH_COOKIE_SECURE = _env_bool("AUTH_COOKIE_SECURE", False)

    # HTTP
    USERS_FILE = os.getenv("USERS_FILE", "users.json")
    MAX_BODY_BYTES = _env_int("MAX_BODY_BYTES", 512)
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    # Development only: echo the issued code in the login response
    EXPOSE_OTP = _env_bool("EXPOSE_OTP", False)


class TestingConfig(Config):
    TESTING = True
    EXPOSE_OTP = True
    REDIS_URL = "redis://localhost:6379/15"
    REQUEST_DEADLINE_SECONDS = 30.0
