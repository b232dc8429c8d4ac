"""
verification.py - second-factor verification flow.

Ties the TOTP check, the replay guard and the session store together and
reports one of four outcomes, which the web layer maps to responses:

- MALFORMED: the code has the wrong length or is not all digits
- MISMATCH:  no counter in the window produces the code (wrong or expired)
- REPLAYED:  the code is time-valid but was already accepted once
- ACCEPTED:  fresh and valid; a session was created
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from core.errors import CodeLengthMismatch, InvalidParameter, StoreUnavailable
from core.otp_core import (
    DEFAULT_DIGITS,
    DEFAULT_TIME_STEP,
    DEFAULT_WINDOW,
    HashAlgorithm,
    check_digits,
    check_period,
    check_window,
    totp,
    verify_totp,
)

logger = logging.getLogger(__name__)


class VerificationOutcome(str, Enum):
    MALFORMED = "malformed"
    MISMATCH = "mismatch"
    REPLAYED = "replayed"
    ACCEPTED = "accepted"


@dataclass(frozen=True)
class OtpSettings:
    """Validated TOTP parameters shared by code issuance and verification."""

    period: int = DEFAULT_TIME_STEP
    digits: int = DEFAULT_DIGITS
    algorithm: HashAlgorithm = HashAlgorithm.SHA1
    window: int = DEFAULT_WINDOW

    def __post_init__(self):
        check_period(self.period)
        check_digits(self.digits)
        check_window(self.window)
        # frozen dataclass: normalise the algorithm name through object.__setattr__
        object.__setattr__(self, "algorithm", HashAlgorithm.parse(self.algorithm))

    @classmethod
    def from_config(cls, config) -> "OtpSettings":
        """
        Build settings from a Flask config mapping.

        Raises:
            UnsupportedAlgorithm / InvalidParameter: on bad configuration.
        """
        try:
            return cls(
                period=int(config["OTP_PERIOD"]),
                digits=int(config["OTP_DIGITS"]),
                algorithm=config["OTP_ALGORITHM"],
                window=int(config["OTP_WINDOW"]),
            )
        except (KeyError, TypeError) as e:
            raise InvalidParameter(f"Incomplete OTP configuration: {e}") from e


@dataclass(frozen=True)
class VerificationResult:
    outcome: VerificationOutcome
    session_id: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.outcome is VerificationOutcome.ACCEPTED


class SecondFactorVerifier:
    """
    Issues and verifies TOTP codes for principals.

    Arguments:
        settings: OtpSettings
        replay_guard: object with ``consume(code, deadline) -> bool`` and ``release(code)``
        session_store: object with ``set(session_id, principal, deadline)``
        session_id_factory: zero-argument callable returning a new token
        clock: returns the current UNIX time (``time.time`` by default)
    """

    def __init__(self, settings: OtpSettings, replay_guard, session_store, session_id_factory, clock=time.time):
        self.settings = settings
        self.replay_guard = replay_guard
        self.session_store = session_store
        self.session_id_factory = session_id_factory
        self.clock = clock

    def issue(self, secret_b32: str, timestamp: Optional[Union[int, float]] = None) -> str:
        """Compute the code the user must send back for the current period."""
        s = self.settings
        when = self.clock() if timestamp is None else timestamp
        return totp(secret_b32, when, s.period, s.digits, s.algorithm)

    def verify(self, principal_id: str, secret_b32: str, candidate: str, deadline=None) -> VerificationResult:
        """
        Run the full check for ``candidate`` submitted by ``principal_id``.

        The replay guard is only touched once the code matched. It is updated
        by the same atomic call that reports whether the code was already
        used. A session is created only for ACCEPTED. If the session write fails
        the code is released again, so the retry is not taken for a replay.

        Raises:
            InvalidSecretEncoding: the principal's stored secret is broken
            StoreUnavailable: Redis unreachable (retryable)
            RandomSourceFailure: no session could be issued
        """
        s = self.settings
        passcode = candidate.strip()
        if not passcode.isdigit() or not passcode.isascii():
            logger.info("Malformed code from %s", principal_id)
            return VerificationResult(VerificationOutcome.MALFORMED)
        try:
            matched = verify_totp(
                secret_b32,
                passcode,
                timestamp=self.clock(),
                period=s.period,
                digits=s.digits,
                algorithm=s.algorithm,
                window=s.window,
            )
        except CodeLengthMismatch:
            logger.info("Code of wrong length from %s", principal_id)
            return VerificationResult(VerificationOutcome.MALFORMED)

        if not matched:
            logger.info("Code mismatch for %s", principal_id)
            return VerificationResult(VerificationOutcome.MISMATCH)

        # before consume(): a RandomSourceFailure must leave the code unused
        session_id = self.session_id_factory()

        if not self.replay_guard.consume(passcode, deadline):
            logger.warning("Replayed code rejected for %s", principal_id)
            return VerificationResult(VerificationOutcome.REPLAYED)

        try:
            self.session_store.set(session_id, principal_id, deadline)
        except StoreUnavailable:
            # không tạo được session: trả lại mã để người dùng thử lại
            try:
                self.replay_guard.release(passcode)
            except StoreUnavailable:
                logger.error("Could not release the code of %s after a failed session write", principal_id)
            raise
        logger.info("Second factor accepted for %s", principal_id)
        return VerificationResult(VerificationOutcome.ACCEPTED, session_id)
