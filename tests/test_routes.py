"""
Tests for the Flask API.

Covers:
- General handlers (welcome, 404, 405, headers)
- Strict JSON body decoding on /auth/login
- Login, verification outcomes and the session cookie
- Session listing behind the cookie
- Store outages reported as 503
"""
import base64
from unittest.mock import MagicMock

import pytest
import redis

from backend.app import create_app
from backend.config import TestingConfig
from core.errors import UnsupportedAlgorithm
from core.otp_core import HashAlgorithm, totp

from conftest import REFERENCE_SECRET

LOGIN = "/api/v1/auth/login"
VERIFY = "/api/v1/auth/verification"
SESSIONS = "/api/v1/sessions"


def basic_auth(username, password):
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


def current_code(clock):
    return totp(REFERENCE_SECRET, clock(), 30, 10, HashAlgorithm.SHA512)


def login(client):
    return client.post(LOGIN, json={"username": "kaede", "password": "kaede-password"})


def failure(code, message):
    return {"status": "fail", "code": code, "message": message}


# ============================================
# General handlers
# ============================================

class TestGeneralHandlers:
    def test_welcome(self, client):
        response = client.get("/api/v1/")
        assert response.status_code == 200
        assert response.get_json() == {"status": "success", "code": 200, "message": "Welcome to 'Flask' API!"}
        assert response.headers["X-Application-Name"] == "Fullstack OTP"

    def test_not_found(self, client):
        response = client.get("/api/v1/404")
        assert response.status_code == 404
        assert response.get_json() == failure(404, "Route '/api/v1/404' with method 'GET' does not exist in this server!")

    def test_method_not_allowed(self, client):
        response = client.delete("/api/v1/")
        assert response.status_code == 405
        assert response.get_json() == failure(405, "Method 'DELETE' is not allowed in this route!")

    def test_bad_algorithm_is_rejected_at_startup(self, users_file, mock_redis_client):
        config = type("Config", (TestingConfig,), {"USERS_FILE": users_file, "OTP_ALGORITHM": "MD5"})
        with pytest.raises(UnsupportedAlgorithm):
            create_app(config, redis_client=mock_redis_client)


# ============================================
# JSON body decoding
# ============================================

class TestDecodeJsonBody:
    @pytest.mark.parametrize("body,content_type,status,message", [
        ('{"username":"kaede","password":"kaede"}', "text/plain", 415,
         "The 'Content-Type' header is not 'application/json'!"),
        ('{"username":"kaede","password":"kaede",examplebadinput}', "application/json", 400,
         "Request body contains a badly formatted JSON at position 39!"),
        ('{"username":"kaede","password":"kaede"', "application/json", 400,
         "Request body contains a badly-formed JSON!"),
        ('{"username":"kaede","password":12345}', "application/json", 400,
         'Request body contains an invalid value for the "password" field!'),
        ('{"username":"kaede","password":"kaede","role":"admin"}', "application/json", 400,
         "Request body contains unknown field 'role'!"),
        ('{"username":"kaede"}', "application/json", 400,
         "Request body is missing the 'password' field!"),
        ("", "application/json", 400, "Request body must not be empty!"),
        ('{"username":"kaede","password":"kaede"}{"a":1}', "application/json", 400,
         "Request body must only contain a single JSON object!"),
        ('["kaede"]', "application/json", 400, "Request body must be a single JSON object!"),
    ])
    def test_rejections(self, client, body, content_type, status, message):
        response = client.post(LOGIN, data=body, content_type=content_type)
        assert response.status_code == status
        assert response.get_json() == failure(status, message)

    def test_body_too_large(self, client):
        body = '{"username":"kaede","password":"%s"}' % ("x" * 600)
        response = client.post(LOGIN, data=body, content_type="application/json")
        assert response.status_code == 413
        assert response.get_json() == failure(413, "Request body must not be larger than 512 bytes!")


# ============================================
# Login / verification
# ============================================

class TestLogin:
    def test_wrong_password(self, client):
        response = client.post(LOGIN, json={"username": "kaede", "password": "nope"})
        assert response.status_code == 401
        assert response.get_json() == failure(401, "Username or password do not match!")

    def test_unknown_user(self, client):
        response = client.post(LOGIN, json={"username": "sayu", "password": "kaede-password"})
        assert response.status_code == 401

    def test_issues_current_code(self, client, clock):
        response = login(client)
        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["otp"] == current_code(clock)
        assert data["user"] == "kaede"
        assert data["digits"] == 10
        assert data["period"] == 30
        assert data["validFor"] == 20

    def test_code_hidden_unless_exposed(self, users_file, mock_redis_client, clock):
        config = type("Config", (TestingConfig,), {"USERS_FILE": users_file, "EXPOSE_OTP": False})
        client = create_app(config, redis_client=mock_redis_client, clock=clock).test_client()
        assert "otp" not in login(client).get_json()["data"]


class TestVerification:
    def test_missing_authorization(self, client):
        response = client.post(VERIFY)
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == 'Basic realm="restricted", charset="UTF-8"'
        assert response.get_json() == failure(401, "Please provide an 'Authorization' header!")

    def test_unknown_user(self, client, clock):
        response = client.post(VERIFY, headers=basic_auth("sayu", current_code(clock)))
        assert response.status_code == 401
        assert response.get_json() == failure(401, "Username does not match with the database!")

    def test_malformed_code(self, client):
        response = client.post(VERIFY, headers=basic_auth("kaede", "12345"))
        assert response.status_code == 400
        assert response.get_json() == failure(
            400, "Your OTP does not conform to the length requirements of the validation server!")

    def test_wrong_code(self, client):
        response = client.post(VERIFY, headers=basic_auth("kaede", "0000000000"))
        assert response.status_code == 401
        assert response.get_json() == failure(401, "Invalid token, wrong TOTP code!")

    def test_full_login_flow(self, client, clock, mock_redis_client):
        code = login(client).get_json()["data"]["otp"]
        clock.advance(5)

        response = client.post(VERIFY, headers=basic_auth("kaede", code))

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["user"] == "kaede"
        assert data["validOTP"] is True
        session_key = data["sessionKey"]
        assert mock_redis_client.get(f"sess:{session_key}") == "kaede"

        cookie = response.headers["Set-Cookie"]
        assert cookie.startswith(f"sess={session_key};")
        assert "HttpOnly" in cookie
        assert "Max-Age=900" in cookie

    def test_replayed_code(self, client, clock):
        code = login(client).get_json()["data"]["otp"]
        assert client.post(VERIFY, headers=basic_auth("kaede", code)).status_code == 200

        clock.advance(5)
        response = client.post(VERIFY, headers=basic_auth("kaede", code))

        assert response.status_code == 400
        assert response.get_json() == failure(400, "The OTP that you entered has been used before!")

    def test_store_outage_is_retryable(self, users_file, clock):
        broken = MagicMock()
        broken.set.side_effect = redis.ConnectionError("down")
        client = create_app(
            type("Config", (TestingConfig,), {"USERS_FILE": users_file}),
            redis_client=broken,
            clock=clock,
        ).test_client()

        response = client.post(VERIFY, headers=basic_auth("kaede", current_code(clock)))

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"


# ============================================
# Sessions
# ============================================

class TestSessions:
    def _logged_in(self, client, clock):
        code = login(client).get_json()["data"]["otp"]
        response = client.post(VERIFY, headers=basic_auth("kaede", code))
        return response.get_json()["data"]["sessionKey"]

    def test_requires_cookie(self, client):
        response = client.get(SESSIONS)
        assert response.status_code == 400
        assert response.get_json() == failure(400, "No session found. Please log in again!")

    def test_unknown_session(self, client):
        client.set_cookie("sess", "does-not-exist")
        response = client.get(SESSIONS)
        assert response.status_code == 400
        assert response.get_json() == failure(400, "User with your session ID is not found! Please log in again!")

    def test_lists_sessions(self, client, clock, mock_redis_client):
        mock_redis_client.set("sess:other", "sayu", ex=900)
        session_key = self._logged_in(client, clock)

        response = client.get(SESSIONS)

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["user"] == "kaede"
        assert sorted(data["keys"], key=lambda k: k["session_id"]) == sorted([
            {"session_id": session_key, "principal_id": "kaede"},
            {"session_id": "other", "principal_id": "sayu"},
        ], key=lambda k: k["session_id"])

    def test_session_expires(self, client, clock):
        self._logged_in(client, clock)
        clock.advance(900)
        response = client.get(SESSIONS)
        assert response.status_code == 400
