"""
errors.py — exception types raised by the OTP engine.

All of them subclass ValueError so callers that only know the old
"raise ValueError('Invalid Base32 secret')" contract keep working.
"""


class OTPError(ValueError):
    """Base class for every error raised by totp_core."""


class InvalidSecretFormat(OTPError):
    """Secret is empty, too short, or not valid Base32."""


class InvalidURIFormat(OTPError):
    """otpauth:// URI has the wrong scheme/type or lacks a usable secret."""


class UnsupportedAlgorithm(OTPError):
    """Hash algorithm is not one of SHA1, SHA256, SHA512."""
