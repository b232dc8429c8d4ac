"""
otp_core.py - HOTP / TOTP engine (RFC 4226 / RFC 6238).

Goals:
- Pure functions only: no file, network or clock access except where a
  timestamp is explicitly left to default to ``time.time()``.
- One place for the secret codec, the counter derivation, the HMAC +
  dynamic truncation and the windowed TOTP verification.
- Usable directly by the Flask backend, the CLI and the tests.

Security notes:
- Verification compares codes with ``hmac.compare_digest``.
- Secrets are never logged by this module.
"""

import base64
import hashlib
import hmac
import struct
import time
from enum import Enum
from typing import Optional, Union
from urllib.parse import quote, urlencode

from core.errors import (
    CodeLengthMismatch,
    HashComputationFailure,
    InvalidCounter,
    InvalidParameter,
    InvalidSecretEncoding,
    UnsupportedAlgorithm,
)

# --- Config / constants ----------------------------------------------------
DEFAULT_DIGITS = 6          # chuẩn: 6 chữ số
DEFAULT_TIME_STEP = 30      # TOTP step (giây)
DEFAULT_WINDOW = 1
MAX_DIGITS = 10             # 31-bit truncated value never exceeds 10 digits
MAX_COUNTER = 2 ** 64 - 1


class HashAlgorithm(str, Enum):
    """Keyed-hash families an OTP can be computed with."""

    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @property
    def digestmod(self):
        return _DIGESTMODS[self]

    @classmethod
    def parse(cls, value: Union["HashAlgorithm", str]) -> "HashAlgorithm":
        """
        Resolve a configured algorithm name ("sha512", "SHA-256", ...).

        Raises:
            UnsupportedAlgorithm: for anything outside the enumeration.
        """
        if isinstance(value, cls):
            return value
        name = str(value).strip().upper().replace("-", "")
        try:
            return cls(name)
        except ValueError as e:
            raise UnsupportedAlgorithm(f"Unsupported OTP algorithm: {value!r}") from e


_DIGESTMODS = {
    HashAlgorithm.SHA1: hashlib.sha1,
    HashAlgorithm.SHA256: hashlib.sha256,
    HashAlgorithm.SHA512: hashlib.sha512,
}


# --- Parameter checks ------------------------------------------------------
def check_digits(digits: int) -> int:
    if isinstance(digits, bool) or not isinstance(digits, int) or not 1 <= digits <= MAX_DIGITS:
        raise InvalidParameter(f"digits must be an integer between 1 and {MAX_DIGITS}, got {digits!r}")
    return digits


def check_period(period: int) -> int:
    if isinstance(period, bool) or not isinstance(period, int) or period <= 0:
        raise InvalidParameter(f"period must be a positive integer, got {period!r}")
    return period


def check_window(window: int) -> int:
    if isinstance(window, bool) or not isinstance(window, int) or window < 0:
        raise InvalidParameter(f"window must be a non-negative integer, got {window!r}")
    return window


# --- Secret codec ----------------------------------------------------------
def decode_secret(secret_b32: str) -> bytes:
    """
    Decode a textual shared secret into raw key bytes.

    - Leading/trailing whitespace is ignored.
    - Case-insensitive, standard base32 alphabet, padding required.

    Raises:
        InvalidSecretEncoding: for non-base32 text, bad padding or an empty secret.
    """
    if not isinstance(secret_b32, str):
        raise InvalidSecretEncoding("Secret must be base32 text")
    try:
        key = base64.b32decode(secret_b32.strip(), casefold=True)
    except ValueError as e:
        # binascii.Error is a ValueError; non-ASCII text raises ValueError too
        raise InvalidSecretEncoding("Invalid Base32 secret") from e
    if not key:
        raise InvalidSecretEncoding("Secret must not be empty")
    return key


def encode_secret(raw: bytes) -> str:
    """Inverse of :func:`decode_secret` (padded, upper case)."""
    return base64.b32encode(raw).decode("ascii")


# --- Counter derivation ----------------------------------------------------
def counter_at(timestamp: Union[int, float], period: int = DEFAULT_TIME_STEP) -> int:
    """
    Map a UNIX timestamp to its TOTP counter: ``floor(timestamp / period)``.

    A negative timestamp gives a negative counter, which is rejected here
    instead of being clamped to zero.
    """
    check_period(period)
    counter = int(timestamp // period)
    if counter < 0:
        raise InvalidCounter(f"Counter must be non-negative, got {counter}")
    return counter


def seconds_remaining(timestamp: Union[int, float], period: int = DEFAULT_TIME_STEP) -> int:
    """Seconds left before the code for ``timestamp`` rolls over."""
    check_period(period)
    return int(period - (timestamp % period))


# --- RFC helpers -----------------------------------------------------------
def int_to_bytes(i: int) -> bytes:
    """
    Pack a counter as the 8-byte big-endian message RFC 4226 expects.

    Example: int_to_bytes(1) -> b'\\x00\\x00\\x00\\x00\\x00\\x00\\x00\\x01'
    """
    return struct.pack(">Q", i)


def dynamic_truncate(hmac_digest: bytes) -> int:
    """
    Dynamic truncation (RFC 4226 section 5.3).

    - offset = last_byte & 0x0F
    - take 4 bytes from offset, clear the top bit of the first one
    - read them as a big-endian 31-bit unsigned integer
    """
    # offset 0..15, đọc từ byte cuối của digest
    offset = hmac_digest[-1] & 0x0F
    return (
        ((hmac_digest[offset] & 0x7F) << 24)
        | ((hmac_digest[offset + 1] & 0xFF) << 16)
        | ((hmac_digest[offset + 2] & 0xFF) << 8)
        | (hmac_digest[offset + 3] & 0xFF)
    )


def hotp(
    secret_b32: str,
    counter: int,
    digits: int = DEFAULT_DIGITS,
    algorithm: Union[HashAlgorithm, str] = HashAlgorithm.SHA1,
) -> str:
    """
    Generate an HOTP code (RFC 4226).

    Steps:
    1. Reject negative counters
    2. Base32-decode secret -> raw key bytes
    3. Message = 8-byte counter (big-endian)
    4. HMAC(algorithm, key, message)
    5. Dynamic truncation -> 31-bit value
    6. value % 10^digits, zero-padded to exactly ``digits`` characters

    Arguments:
        secret_b32: base32 shared secret
        counter: non-negative integer counter
        digits: code length, 1..10
        algorithm: HashAlgorithm member or its name

    Returns:
        str: the zero-padded code

    Raises:
        InvalidCounter: counter < 0 (or wider than 64 bits)
        InvalidSecretEncoding: secret is not valid base32
        InvalidParameter: digits out of range
        HashComputationFailure: the HMAC could not be computed
    """
    if counter < 0 or counter > MAX_COUNTER:
        raise InvalidCounter(f"Counter must be a non-negative 64-bit integer, got {counter}")
    key = decode_secret(secret_b32)
    check_digits(digits)
    algorithm = HashAlgorithm.parse(algorithm)

    try:
        # message là 8 byte big-endian từ counter
        digest = hmac.new(key, int_to_bytes(counter), algorithm.digestmod).digest()
    except (TypeError, ValueError) as e:
        raise HashComputationFailure(f"HMAC-{algorithm.value} failed") from e

    otp_val = dynamic_truncate(digest) % (10 ** digits)
    # zero-pad
    return str(otp_val).zfill(digits)


def totp(
    secret_b32: str,
    timestamp: Optional[Union[int, float]] = None,
    period: int = DEFAULT_TIME_STEP,
    digits: int = DEFAULT_DIGITS,
    algorithm: Union[HashAlgorithm, str] = HashAlgorithm.SHA1,
) -> str:
    """
    Generate a TOTP code (RFC 6238): HOTP with counter = floor(timestamp / period).

    ``timestamp`` defaults to the current time.
    """
    if timestamp is None:
        timestamp = time.time()
    return hotp(secret_b32, counter_at(timestamp, period), digits, algorithm)


def verify_totp(
    secret_b32: str,
    code: str,
    timestamp: Optional[Union[int, float]] = None,
    period: int = DEFAULT_TIME_STEP,
    digits: int = DEFAULT_DIGITS,
    algorithm: Union[HashAlgorithm, str] = HashAlgorithm.SHA1,
    window: int = DEFAULT_WINDOW,
) -> bool:
    """
    Check a candidate TOTP against every counter in ``counter ± window``.

    Counters are scanned in ascending order starting at ``counter - window``
    and the scan stops on the first match. Counters below zero (only
    possible within ``window`` periods of the epoch) are skipped. Replay
    protection is not handled here, see ``store.replay_guard``.

    Returns:
        bool: True if some counter in the window produces ``code``.

    Raises:
        CodeLengthMismatch: the trimmed code is not ``digits`` long
        InvalidCounter / InvalidSecretEncoding / InvalidParameter: as for hotp
    """
    check_digits(digits)
    check_window(window)
    passcode = code.strip()
    if len(passcode) != digits:
        raise CodeLengthMismatch(f"Code must be {digits} digits long, got {len(passcode)}")

    if timestamp is None:
        timestamp = time.time()
    # counter hiện tại theo TOTP
    counter = counter_at(timestamp, period)

    for test_counter in range(max(counter - window, 0), counter + window + 1):
        expected = hotp(secret_b32, test_counter, digits, algorithm)
        if hmac.compare_digest(expected.encode("ascii"), passcode.encode("utf-8")):
            return True
    return False


def format_otpauth_uri(
    secret_b32: str,
    account: str,
    issuer: str,
    algorithm: Union[HashAlgorithm, str] = HashAlgorithm.SHA1,
    digits: int = DEFAULT_DIGITS,
    period: int = DEFAULT_TIME_STEP,
) -> str:
    """
    Build the otpauth:// provisioning URI authenticator apps import.

    otpauth://totp/{issuer}:{account}?secret=...&issuer=...&algorithm=...&digits=...&period=...
    """
    algorithm = HashAlgorithm.parse(algorithm)
    label = quote(f"{issuer}:{account}")
    params = urlencode({
        "secret": secret_b32.strip().upper().rstrip("="),
        "issuer": issuer,
        "algorithm": algorithm.value,
        "digits": check_digits(digits),
        "period": check_period(period),
    })
    return f"otpauth://totp/{label}?{params}"
