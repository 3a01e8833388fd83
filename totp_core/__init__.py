"""
totp_core package
=================

TOTP / HOTP engine (RFC 6238 & RFC 4226) plus the otpauth:// URI codec
used for QR enrollment.

──────────────────────────────────────────────
Core algorithm
──────────────────────────────────────────────
- HOTP:
  code = Truncate(HMAC-<alg>(key=secret, msg=counter)) mod 10^digits
- TOTP:
  HOTP with counter = floor(timestamp / period)
  → defaults: SHA1, 6 digits, 30 seconds, validation window ±1 period.
- Dynamic truncation:
  4 bytes at offset (last byte & 0x0F), top bit cleared.

──────────────────────────────────────────────
Quick example
──────────────────────────────────────────────
>>> from totp_core import TOTPParams, generate_totp, validate_totp
>>> params = TOTPParams(digits=6, period=30)
>>> code = generate_totp("JBSWY3DPEHPK3PXP", params, at_time=59)
>>> validate_totp(code, "JBSWY3DPEHPK3PXP", params, at_time=59)
True
"""

from .errors import (
    OTPError,
    InvalidSecretFormat,
    InvalidURIFormat,
    UnsupportedAlgorithm,
)
from .otp_core import (
    TOTPParams,
    TOTPWindow,
    decode_secret,
    encode_secret,
    clean_secret,
    is_valid_secret,
    generate_secret,
    compute_hotp,
    hotp,
    verify_hotp,
    time_step_counter,
    generate_totp,
    validate_totp,
    time_remaining,
    generate_totp_range,
)
from .otpauth_uri import (
    AccountDescriptor,
    parse_provisioning_uri,
    build_provisioning_uri,
)

__all__ = [
    "OTPError",
    "InvalidSecretFormat",
    "InvalidURIFormat",
    "UnsupportedAlgorithm",
    "TOTPParams",
    "TOTPWindow",
    "decode_secret",
    "encode_secret",
    "clean_secret",
    "is_valid_secret",
    "generate_secret",
    "compute_hotp",
    "hotp",
    "verify_hotp",
    "time_step_counter",
    "generate_totp",
    "validate_totp",
    "time_remaining",
    "generate_totp_range",
    "AccountDescriptor",
    "parse_provisioning_uri",
    "build_provisioning_uri",
]
