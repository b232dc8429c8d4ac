"""
errors.py - Exception hierarchy for the OTP core and its stores.

Caller-input errors (bad secret, negative counter, wrong code length, bad
parameters) also derive from ValueError so generic handlers keep working.
StoreUnavailable is the only retryable kind; nothing in this package retries
on its own.
"""


class OTPError(Exception):
    """Base class for every error raised by this project."""

    retryable = False


# --- Caller input ----------------------------------------------------------
class InvalidSecretEncoding(OTPError, ValueError):
    """The shared secret is not valid base32."""


class InvalidCounter(OTPError, ValueError):
    """The counter (or the timestamp it came from) is negative."""


class CodeLengthMismatch(OTPError, ValueError):
    """The candidate code does not have the configured number of digits."""


class InvalidParameter(OTPError, ValueError):
    """digits / period / window outside of the supported range."""


# --- Hashing ---------------------------------------------------------------
class HashComputationFailure(OTPError):
    """HMAC could not be computed with the configured algorithm."""


class UnsupportedAlgorithm(HashComputationFailure, ValueError):
    """Raised while loading configuration for an unknown algorithm name."""


# --- Infrastructure --------------------------------------------------------
class StoreUnavailable(OTPError):
    """
    The key-value store could not be reached or answered with an error.

    The original exception is chained as __cause__.
    """

    retryable = True


class DeadlineExceeded(StoreUnavailable):
    """The request deadline passed before a store round trip was made."""


class RandomSourceFailure(OTPError):
    """The OS secure random source is unavailable."""
