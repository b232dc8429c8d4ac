"""
User directory backed by a JSON file.

{
    "alice": {"password": "<werkzeug hash>", "secret": "<base32 TOTP secret>"}
}

Password storage is not the OTP core's business; this file only gives the
web layer a principal, a password check and a shared secret per user.
"""
import json
import logging
import os
from typing import Dict, Optional

import pyotp
from werkzeug.security import check_password_hash, generate_password_hash

logger = logging.getLogger(__name__)

USER_FILE = "users.json"

# compared against when the user does not exist, so both paths hash once
_DUMMY_HASH = generate_password_hash("fullstack-otp-dummy-password")


def load_users(path: str = USER_FILE) -> Dict[str, Dict[str, str]]:
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_user(username: str, password: str, path: str = USER_FILE, secret: Optional[str] = None) -> str:
    """
    Create or replace ``username`` and return its base32 TOTP secret.

    A fresh 160-bit secret from ``pyotp.random_base32()`` is generated unless
    one is given.
    """
    if not username:
        raise ValueError("Username must not be empty")
    users = load_users(path)
    secret = secret or pyotp.random_base32()
    users[username] = {
        "password": generate_password_hash(password),
        "secret": secret,
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(users, f, indent=2)
    logger.info("Saved user '%s' to %s", username, path)
    return secret


def verify_user(username: str, password: str, path: str = USER_FILE) -> bool:
    users = load_users(path)
    user = users.get(username)
    if user is None:
        check_password_hash(_DUMMY_HASH, password)
        return False
    return check_password_hash(user["password"], password)


def get_user_secret(username: str, path: str = USER_FILE) -> Optional[str]:
    user = load_users(path).get(username)
    if user is None:
        return None
    return user["secret"]
