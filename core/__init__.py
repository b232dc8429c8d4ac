"""
core package
============

HOTP / TOTP engine (RFC 4226 & RFC 6238) and the second-factor
verification flow built on top of it.

──────────────────────────────────────────────
Algorithm
──────────────────────────────────────────────
- HOTP: code = Truncate(HMAC(key=secret, msg=counter)) mod 10^digits
- TOTP: HOTP with counter = floor(timestamp / period)
- Dynamic truncation: 4 bytes taken at offset (last byte & 0x0F),
  top bit cleared.

──────────────────────────────────────────────
Quick example
──────────────────────────────────────────────
>>> from core import totp, verify_totp, HashAlgorithm
>>> secret = "KRUGKIDROVUWG2ZAMJZG653OEBTG66BANJ2W24DTEBXXMZLSEB2GQZJANRQXU6JAMRXWOLQ="
>>> code = totp(secret, timestamp=1_600_000_000, digits=8, algorithm=HashAlgorithm.SHA256)
>>> verify_totp(secret, code, timestamp=1_600_000_005, digits=8, algorithm="sha256")
True
"""
from .errors import (
    OTPError,
    InvalidSecretEncoding,
    InvalidCounter,
    CodeLengthMismatch,
    InvalidParameter,
    HashComputationFailure,
    UnsupportedAlgorithm,
    StoreUnavailable,
    DeadlineExceeded,
    RandomSourceFailure,
)
from .otp_core import (
    HashAlgorithm,
    decode_secret,
    encode_secret,
    counter_at,
    seconds_remaining,
    hotp,
    totp,
    verify_totp,
    format_otpauth_uri,
)
from .verification import (
    OtpSettings,
    SecondFactorVerifier,
    VerificationOutcome,
    VerificationResult,
)
