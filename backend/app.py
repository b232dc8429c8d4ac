"""
FLASK APP MAIN ENTRY POINT - OTP BACKEND SERVER
===============================================

Builds the Flask application: configuration, CORS, the Redis-backed replay
guard and session store, the second-factor verifier and the API blueprint.

Run:
    fullstack-otp-server              # or: python -m backend.app
    PORT=9000 REDIS_URL=redis://cache:6379/0 fullstack-otp-server
"""
import logging
import os
import time
from dataclasses import dataclass
from functools import partial

from flask import Flask, request
from flask_cors import CORS
from werkzeug.exceptions import MethodNotAllowed, NotFound

from backend.config import Config
from backend.routes import failure_response, otp_bp
from core.errors import RandomSourceFailure, StoreUnavailable
from core.verification import OtpSettings, SecondFactorVerifier
from store import (
    ReplayGuard,
    SessionStore,
    default_blacklist_ttl,
    generate_session_id,
    get_redis_client,
)

logger = logging.getLogger(__name__)


@dataclass
class OtpServices:
    settings: OtpSettings
    replay_guard: ReplayGuard
    session_store: SessionStore
    verifier: SecondFactorVerifier


def _blacklist_ttl(config, settings: OtpSettings):
    ttl = config.get("BLACKLIST_TTL_SECONDS")
    if ttl is None:
        return default_blacklist_ttl(settings.period, settings.window)
    return int(ttl) or None


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(NotFound)
    def not_found(e):
        return failure_response(404, f"Route '{request.path}' with method '{request.method}' does not exist in this server!")

    @app.errorhandler(MethodNotAllowed)
    def method_not_allowed(e):
        return failure_response(405, f"Method '{request.method}' is not allowed in this route!")

    @app.errorhandler(StoreUnavailable)
    def store_unavailable(e):
        logger.error("Store unavailable: %s", e)
        response, status = failure_response(503, "Session store is temporarily unavailable, please retry!")
        response.headers["Retry-After"] = "1"
        return response, status

    @app.errorhandler(RandomSourceFailure)
    def random_source_failure(e):
        logger.critical("Secure random source failed: %s", e)
        return failure_response(500, "Could not create a session, please try again later!")


def create_app(config_object=Config, redis_client=None, clock=None) -> Flask:
    """
    Application factory.

    Arguments:
        config_object: class or object passed to ``app.config.from_object``
        redis_client: an existing Redis client (tests); built from REDIS_URL otherwise
        clock: UNIX time source for the verifier, ``time.time`` by default

    Raises:
        UnsupportedAlgorithm / InvalidParameter: invalid OTP configuration
    """
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    # BẬT CORS: cho phép frontend chạy trên domain/port khác gọi API
    CORS(app, origins=app.config["CORS_ORIGINS"])

    # cấu hình OTP sai thì dừng ngay khi khởi động, không đợi đến lúc verify
    settings = OtpSettings.from_config(app.config)
    if redis_client is None:
        redis_client = get_redis_client(app.config["REDIS_URL"], app.config["REDIS_SOCKET_TIMEOUT"])

    replay_guard = ReplayGuard(redis_client, ttl=_blacklist_ttl(app.config, settings))
    session_store = SessionStore(redis_client, ttl=app.config["SESSION_TTL_SECONDS"])
    verifier = SecondFactorVerifier(
        settings,
        replay_guard,
        session_store,
        session_id_factory=partial(generate_session_id, app.config["SESSION_ID_BYTES"]),
        clock=clock or time.time,
    )
    app.extensions["fullstack_otp"] = OtpServices(settings, replay_guard, session_store, verifier)

    # ĐĂNG KÝ ROUTES: tất cả endpoint nằm dưới /api/v1
    app.register_blueprint(otp_bp)
    register_error_handlers(app)

    @app.after_request
    def add_headers(response):
        response.headers["X-Application-Name"] = "Fullstack OTP"
        return response

    logger.info(
        "OTP settings: %s digits, %ss period, %s, window %s",
        settings.digits, settings.period, settings.algorithm.value, settings.window,
    )
    return app


# KHỞI CHẠY SERVER
def main():
    app = create_app()
    port = int(os.getenv("PORT", "8080"))
    logger.info("Server has started on port %s!", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
