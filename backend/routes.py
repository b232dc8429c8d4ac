"""
OTP BACKEND API ROUTES - FLASK BLUEPRINT

Every endpoint of the two-step login lives here:

- GET  /api/v1/                   welcome / health
- POST /api/v1/auth/login         username + password -> a TOTP is issued
- POST /api/v1/auth/verification  Basic auth "username:code" -> session cookie
- GET  /api/v1/sessions           list live sessions (needs the session cookie)

Responses always use the same JSON envelopes:
  {"status": "success", "code": 200, "message": "...", "data": {...}}
  {"status": "fail", "code": 4xx/5xx, "message": "..."}

EXAMPLE:
curl -X POST http://localhost:8080/api/v1/auth/login -H "Content-Type: application/json" \
     -d '{"username": "alice", "password": "secret"}'
curl -X POST http://localhost:8080/api/v1/auth/verification -u alice:0582933009
"""
import json
import logging
from functools import wraps
from typing import Dict, Tuple

from flask import Blueprint, current_app, g, jsonify, request

from backend.models import get_user_secret, verify_user
from core.errors import InvalidSecretEncoding
from core.otp_core import seconds_remaining
from core.verification import VerificationOutcome
from store.deadline import Deadline

logger = logging.getLogger(__name__)

otp_bp = Blueprint("otp", __name__, url_prefix="/api/v1")


# --- Response helpers (định dạng JSON trả về) ------------------------------
def success_response(code: int, message: str, data=None):
    body = {"status": "success", "code": code, "message": message}
    if data is not None:
        body["data"] = data
    return jsonify(body), code


def failure_response(code: int, message: str):
    return jsonify({"status": "fail", "code": code, "message": message}), code


class RequestBodyError(Exception):
    """A request body that could not be accepted; carries the HTTP status."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def decode_json_body(fields: Dict[str, type]) -> dict:
    """
    Strictly decode the JSON body of the current request.

    - Content-Type must be application/json (415)
    - body must not exceed MAX_BODY_BYTES (413)
    - exactly one JSON object, only the declared ``fields``, each present and
      of the declared type (400)

    Raises:
        RequestBodyError
    """
    if request.mimetype != "application/json":
        raise RequestBodyError(415, "The 'Content-Type' header is not 'application/json'!")

    limit = current_app.config["MAX_BODY_BYTES"]
    too_large = RequestBodyError(413, f"Request body must not be larger than {limit} bytes!")
    if request.content_length is not None and request.content_length > limit:
        raise too_large
    raw = request.get_data(cache=True)
    if len(raw) > limit:
        raise too_large

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise RequestBodyError(400, "Request body must be UTF-8 encoded!")
    if not text.strip():
        raise RequestBodyError(400, "Request body must not be empty!")

    try:
        body = json.loads(text)
    except json.JSONDecodeError as e:
        if e.msg == "Extra data":
            raise RequestBodyError(400, "Request body must only contain a single JSON object!")
        if e.pos >= len(text.rstrip()):
            raise RequestBodyError(400, "Request body contains a badly-formed JSON!")
        raise RequestBodyError(400, f"Request body contains a badly formatted JSON at position {e.pos}!")

    if not isinstance(body, dict):
        raise RequestBodyError(400, "Request body must be a single JSON object!")
    for name in body:
        if name not in fields:
            raise RequestBodyError(400, f"Request body contains unknown field '{name}'!")
    for name, expected in fields.items():
        if name not in body:
            raise RequestBodyError(400, f"Request body is missing the '{name}' field!")
        if not isinstance(body[name], expected):
            raise RequestBodyError(400, f"Request body contains an invalid value for the \"{name}\" field!")
    return body


@otp_bp.errorhandler(RequestBodyError)
def handle_request_body_error(e: RequestBodyError):
    return failure_response(e.code, e.message)


# --- Request plumbing (deadline, session cookie) ---------------------------
def _services():
    return current_app.extensions["fullstack_otp"]


@otp_bp.before_request
def start_deadline():
    g.deadline = Deadline.from_timeout(current_app.config["REQUEST_DEADLINE_SECONDS"])


def session_required(view):
    """Resolve the session cookie to a principal in ``g.principal`` or reject."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        session_id = request.cookies.get(current_app.config["AUTH_COOKIE_NAME"])
        if not session_id:
            return failure_response(400, "No session found. Please log in again!")
        principal = _services().session_store.get(session_id, g.deadline)
        if principal is None:
            return failure_response(400, "User with your session ID is not found! Please log in again!")
        g.principal = principal
        return view(*args, **kwargs)

    return wrapper


def deliver_code(username: str, code: str, valid_for: int) -> None:
    """
    Hand the freshly issued code to the user out of band.

    Delivery channels (mail, SMS, push) are deployment specific; this
    default only records that a code went out.
    """
    logger.info("Issued a one-time code to '%s' (valid for %ss)", username, valid_for)


def _user_secret_or_none(username: str):
    return get_user_secret(username, current_app.config["USERS_FILE"])


# --- Endpoints (API v1) ----------------------------------------------------
@otp_bp.route("/", methods=["GET"], strict_slashes=False)
def index():
    return success_response(200, "Welcome to 'Flask' API!")


@otp_bp.route("/auth/login", methods=["POST"])
def login():
    """
    First factor. On a password match a TOTP is computed for the user's
    shared secret and delivered out of band.

      Body: {"username": "alice", "password": "..."}
    """
    body = decode_json_body({"username": str, "password": str})
    username = body["username"]

    if not verify_user(username, body["password"], current_app.config["USERS_FILE"]):
        return failure_response(401, "Username or password do not match!")

    services = _services()
    settings = services.settings
    now = services.verifier.clock()
    try:
        code = services.verifier.issue(_user_secret_or_none(username), now)
    except InvalidSecretEncoding:
        logger.error("Stored secret of '%s' is not valid base32", username)
        return failure_response(500, "The shared secret of this user is misconfigured!")

    valid_for = seconds_remaining(now, settings.period)
    deliver_code(username, code, valid_for)

    data = {
        "user": username,
        "digits": settings.digits,
        "period": settings.period,
        "validFor": valid_for,
        "loginTime": int(now),
    }
    if current_app.config["EXPOSE_OTP"]:
        data["otp"] = code
    return success_response(200, "Successfully logged in! Please verify the code sent to you.", data)


_OUTCOME_FAILURES: Dict[VerificationOutcome, Tuple[int, str]] = {
    VerificationOutcome.MALFORMED: (
        400, "Your OTP does not conform to the length requirements of the validation server!"),
    VerificationOutcome.MISMATCH: (401, "Invalid token, wrong TOTP code!"),
    VerificationOutcome.REPLAYED: (400, "The OTP that you entered has been used before!"),
}


@otp_bp.route("/auth/verification", methods=["POST"])
def verification():
    """
    Second factor. Credentials come as HTTP Basic "username:code".
    On success the session token is set as an HttpOnly cookie.
    """
    auth = request.authorization
    if auth is None or auth.type != "basic" or not auth.username:
        response, status = failure_response(401, "Please provide an 'Authorization' header!")
        response.headers["WWW-Authenticate"] = 'Basic realm="restricted", charset="UTF-8"'
        return response, status

    # Basic auth: username là user, password là mã OTP
    username, candidate = auth.username, auth.password or ""
    secret = _user_secret_or_none(username)
    if secret is None:
        return failure_response(401, "Username does not match with the database!")

    services = _services()
    try:
        result = services.verifier.verify(username, secret, candidate, g.deadline)
    except InvalidSecretEncoding:
        logger.error("Stored secret of '%s' is not valid base32", username)
        return failure_response(500, "The shared secret of this user is misconfigured!")

    if not result.valid:
        return failure_response(*_OUTCOME_FAILURES[result.outcome])

    ttl = services.session_store.ttl
    response, status = success_response(200, "OTP and user successfully verified!", {
        "user": username,
        "validOTP": True,
        "sessionKey": result.session_id,
        "verifyTime": int(services.verifier.clock()),
    })
    response.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        result.session_id,
        max_age=ttl,
        path="/",
        httponly=True,
        secure=current_app.config["AUTH_COOKIE_SECURE"],
        samesite="Lax",
    )
    return response, status


@otp_bp.route("/sessions", methods=["GET"], strict_slashes=False)
@session_required
def list_sessions():
    records = _services().session_store.all(g.deadline)
    return success_response(200, "All of the sessions in the application.", {
        "keys": [record.to_dict() for record in records],
        "user": g.principal,
    })
