#!/usr/bin/env python3
"""
otp_core.py — Core library for TOTP / HOTP (RFC 6238 / RFC 4226).

Goals:
- Pure functions only: every call takes the secret, the time and the
  parameters explicitly. No module-level default options, no file I/O.
- Codes must match Google Authenticator, Authy and friends, so the
  HMAC / dynamic truncation steps follow the RFCs exactly.
- Usable directly from the CLI (otp_cli.py), the Flask backend and the
  account database layer.

Security notes:
- Secrets and generated codes are never logged.
- Code comparison goes through hmac.compare_digest.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, NamedTuple, Optional, Tuple
import base64
import binascii
import hashlib
import hmac
import logging
import math
import os
import re
import struct
import time

from .errors import InvalidSecretFormat, UnsupportedAlgorithm

logger = logging.getLogger(__name__)

# --- Config / constants ----------------------------------------------------
DEFAULT_ALGORITHM = "SHA1"
DEFAULT_DIGITS = 6          # standard: 6 digits
DEFAULT_TIME_STEP = 30      # TOTP step (seconds)
DEFAULT_WINDOW = 1          # +/- 1 period when validating
MAX_WINDOW = 10
MIN_TIME_STEP = 1
MAX_TIME_STEP = 300
SUPPORTED_ALGORITHMS = ("SHA1", "SHA256", "SHA512")
SUPPORTED_DIGITS = (6, 7, 8)
SECRET_BYTES = 20           # 160-bit secret (common practice)
MIN_SECRET_CHARS = 8        # Base32 characters, padding excluded
MAX_COUNTER = 2 ** 64 - 1
MAX_TIMESTAMP = 253402300799  # 9999-12-31T23:59:59Z, last time datetime can show

_HASHES = {
    "SHA1": hashlib.sha1,
    "SHA256": hashlib.sha256,
    "SHA512": hashlib.sha512,
}
_BASE32_RE = re.compile(r"[A-Z2-7]+=*")
_WHITESPACE_RE = re.compile(r"\s+")
_INT_RE = re.compile(r"[+-]?\d+")
_CODE_RE = re.compile(r"[0-9]+")


# --- Parameter normalization -----------------------------------------------
def coerce_int(value) -> Optional[int]:
    """
    Return value as an int when it is an int or an integral string, else None.

    Booleans and floats are refused: "digits=6.5" is not a valid digit count.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_RE.fullmatch(value.strip()):
        return int(value.strip())
    return None


def _algorithm_name(value) -> str:
    return value.strip().upper().replace("-", "") if isinstance(value, str) else ""


def is_supported_algorithm(value) -> bool:
    return _algorithm_name(value) in SUPPORTED_ALGORITHMS


def normalize_algorithm(value) -> str:
    """'sha256' / 'SHA-256' -> 'SHA256'; anything unsupported -> SHA1."""
    name = _algorithm_name(value)
    return name if name in SUPPORTED_ALGORITHMS else DEFAULT_ALGORITHM


def normalize_digits(value) -> int:
    digits = coerce_int(value)
    return digits if digits in SUPPORTED_DIGITS else DEFAULT_DIGITS


def normalize_period(value) -> int:
    period = coerce_int(value)
    if period is None or not MIN_TIME_STEP <= period <= MAX_TIME_STEP:
        return DEFAULT_TIME_STEP
    return period


def normalize_window(value) -> int:
    window = coerce_int(value)
    if window is None or not 0 <= window <= MAX_WINDOW:
        return DEFAULT_WINDOW
    return window


@dataclass(frozen=True)
class TOTPParams:
    """
    Generation / validation parameters, passed explicitly to every call.

    Out-of-range values are replaced by the defaults on construction
    instead of raising, so TOTPParams(digits=9) is TOTPParams(digits=6).
    The window is capped at MAX_WINDOW periods each way.
    """

    algorithm: str = DEFAULT_ALGORITHM
    digits: int = DEFAULT_DIGITS
    period: int = DEFAULT_TIME_STEP
    window: int = DEFAULT_WINDOW

    def __post_init__(self):
        object.__setattr__(self, "algorithm", normalize_algorithm(self.algorithm))
        object.__setattr__(self, "digits", normalize_digits(self.digits))
        object.__setattr__(self, "period", normalize_period(self.period))
        object.__setattr__(self, "window", normalize_window(self.window))

    @classmethod
    def from_mapping(cls, data) -> "TOTPParams":
        """Build from a dict (JSON body, query args); missing keys use defaults."""
        return cls(
            algorithm=data.get("algorithm"),
            digits=data.get("digits"),
            period=data.get("period"),
            window=data.get("window"),
        )


# --- Secret codec ----------------------------------------------------------
def _strip_secret(secret) -> str:
    """Whitespace removed, uppercased, validated, padding removed."""
    if not isinstance(secret, str):
        raise InvalidSecretFormat("Secret must be a non-empty string")
    cleaned = _WHITESPACE_RE.sub("", secret).upper()
    if not cleaned:
        raise InvalidSecretFormat("Secret must be a non-empty string")
    if not _BASE32_RE.fullmatch(cleaned):
        raise InvalidSecretFormat("Secret must be valid Base32 encoded string")
    unpadded = cleaned.rstrip("=")
    if len(unpadded) < MIN_SECRET_CHARS:
        raise InvalidSecretFormat(
            f"Secret is too short (minimum {MIN_SECRET_CHARS} characters without padding)"
        )
    return unpadded


def _b32decode(unpadded: str) -> bytes:
    # b32decode insists on full 8-char groups, so re-pad whatever the user gave us
    try:
        return base64.b32decode(unpadded + "=" * (-len(unpadded) % 8))
    except binascii.Error as e:
        raise InvalidSecretFormat("Secret length is not a valid Base32 length") from e


def decode_secret(secret: str) -> bytes:
    """
    Decode a Base32 secret (as typed or scanned) into raw key bytes.

    - Whitespace anywhere is ignored, lowercase is accepted.
    - Trailing '=' padding is optional.

    Raises:
        InvalidSecretFormat: empty, non-Base32 characters, fewer than 8
        characters without padding, or an impossible Base32 length.
    """
    return _b32decode(_strip_secret(secret))


def clean_secret(secret: str) -> str:
    """Canonical form of a secret: uppercase, no whitespace, no padding."""
    unpadded = _strip_secret(secret)
    _b32decode(unpadded)
    return unpadded


def encode_secret(raw: bytes, padding: bool = False) -> str:
    """
    Encode raw key bytes as uppercase Base32 (unpadded unless asked).

    Raises:
        InvalidSecretFormat: raw is empty
    """
    if not raw:
        raise InvalidSecretFormat("Secret bytes must not be empty")
    b32 = base64.b32encode(bytes(raw)).decode("ascii")
    return b32 if padding else b32.rstrip("=")


def is_valid_secret(secret: str) -> bool:
    try:
        decode_secret(secret)
    except InvalidSecretFormat:
        return False
    return True


def generate_secret(num_bytes: int = SECRET_BYTES) -> str:
    """
    Generate a random secret, returned as unpadded Base32.

    - Bytes come from os.urandom (CSPRNG).
    - 20 bytes (160 bits) by default, which gives the familiar
      32-character secret accepted by every authenticator app.
    """
    if num_bytes < 5:
        # fewer than 5 bytes encodes to fewer than MIN_SECRET_CHARS characters
        raise ValueError("num_bytes must be at least 5")
    return encode_secret(os.urandom(num_bytes))


# --- RFC helpers -----------------------------------------------------------
def int_to_bytes(i: int) -> bytes:
    """
    Counter as the 8-byte big-endian message required by RFC 4226.

    Example: int_to_bytes(1) -> b'\\x00\\x00\\x00\\x00\\x00\\x00\\x00\\x01'
    """
    return struct.pack(">Q", i)


def dynamic_truncate(hmac_digest: bytes) -> int:
    """
    RFC 4226 dynamic truncation.

    - offset = last_byte & 0x0F
    - take 4 bytes from offset, clear the MSB of the first one
    - return the resulting 31-bit unsigned integer

    Works for SHA1/SHA256/SHA512 digests alike: the offset is at most 15
    and the shortest digest is 20 bytes.
    """
    offset = hmac_digest[-1] & 0x0F
    code = (
        ((hmac_digest[offset] & 0x7F) << 24)
        | ((hmac_digest[offset + 1] & 0xFF) << 16)
        | ((hmac_digest[offset + 2] & 0xFF) << 8)
        | (hmac_digest[offset + 3] & 0xFF)
    )
    return code


def _digestmod(algorithm: str):
    try:
        return _HASHES[_algorithm_name(algorithm)]
    except KeyError:
        raise UnsupportedAlgorithm(f"Unsupported algorithm: {algorithm!r}") from None


def compute_hotp(
    secret_bytes: bytes,
    counter: int,
    algorithm: str = DEFAULT_ALGORITHM,
    digits: int = DEFAULT_DIGITS,
) -> str:
    """
    HOTP code per RFC 4226.

    Steps:
    1. Message = 8-byte big-endian counter
    2. HMAC-<algorithm>(key=secret_bytes, message)
    3. Dynamic truncate -> 31-bit integer
    4. otp = value % 10^digits, zero-padded to exactly `digits` characters

    Raises:
        InvalidSecretFormat: secret_bytes is empty
        UnsupportedAlgorithm: algorithm not SHA1/SHA256/SHA512
        ValueError: counter outside [0, 2^64) or digits < 1
    """
    if not secret_bytes:
        raise InvalidSecretFormat("Secret bytes must not be empty")
    if not 0 <= counter <= MAX_COUNTER:
        raise ValueError(f"Counter out of range: {counter}")
    if digits < 1:
        raise ValueError(f"digits must be positive, got {digits}")

    digest = hmac.new(bytes(secret_bytes), int_to_bytes(counter), _digestmod(algorithm)).digest()
    dbc = dynamic_truncate(digest)
    return str(dbc % (10 ** digits)).zfill(digits)


def _clean_code(code) -> Optional[str]:
    """User input '123 456' -> '123456'; None when it cannot be a code."""
    if not isinstance(code, str):
        return None
    candidate = _WHITESPACE_RE.sub("", code)
    return candidate if _CODE_RE.fullmatch(candidate) else None


def hotp(secret_b32: str, counter: int, params: Optional[TOTPParams] = None) -> str:
    """HOTP code for a Base32 secret; only algorithm/digits of params are used."""
    p = params if params is not None else TOTPParams()
    return compute_hotp(decode_secret(secret_b32), counter, p.algorithm, p.digits)


def verify_hotp(
    code: str,
    secret_b32: str,
    counter: int,
    params: Optional[TOTPParams] = None,
    look_ahead: int = 1,
) -> Tuple[bool, int]:
    """
    Check an HOTP code against counters counter..counter+look_ahead.

    Returns:
        (True, matched_counter + 1) on success, (False, counter) otherwise.
        A secret that does not decode is a failed verification, not an error.
    """
    p = params if params is not None else TOTPParams()
    try:
        key = decode_secret(secret_b32)
    except InvalidSecretFormat as e:
        logger.debug("HOTP verification failed: %s", e)
        return False, counter

    candidate = _clean_code(code)
    if candidate is None or len(candidate) != p.digits:
        return False, counter

    for i in range(max(look_ahead, 0) + 1):
        test_counter = counter + i
        if test_counter > MAX_COUNTER:
            break
        expected = compute_hotp(key, test_counter, p.algorithm, p.digits)
        if hmac.compare_digest(expected, candidate):
            return True, test_counter + 1
    return False, counter


# --- TOTP ------------------------------------------------------------------
class TOTPWindow(NamedTuple):
    code: str
    time_slot: int
    valid_from: datetime
    valid_to: datetime


def time_step_counter(unix_seconds: float, period: int = DEFAULT_TIME_STEP) -> int:
    """RFC 6238 counter: floor(unix_seconds / period), T0 = 0."""
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    return int(unix_seconds // period)


def generate_totp(
    secret_b32: str,
    params: Optional[TOTPParams] = None,
    at_time: Optional[float] = None,
) -> str:
    """
    TOTP code per RFC 6238: HOTP(counter = floor(at_time / period)).

    Arguments:
        secret_b32: Base32 secret
        params: algorithm/digits/period (defaults: SHA1, 6, 30)
        at_time: epoch seconds (None -> time.time())

    Raises:
        InvalidSecretFormat: if the secret does not decode
    """
    p = params if params is not None else TOTPParams()
    key = decode_secret(secret_b32)
    if at_time is None:
        at_time = time.time()
    return compute_hotp(key, time_step_counter(at_time, p.period), p.algorithm, p.digits)


def validate_totp(
    code: str,
    secret_b32: str,
    params: Optional[TOTPParams] = None,
    at_time: Optional[float] = None,
) -> bool:
    """
    Check a user-entered TOTP code, tolerating +/- params.window periods.

    Never raises for bad input: an undecodable secret or a code of the
    wrong shape simply does not validate.
    """
    p = params if params is not None else TOTPParams()
    try:
        key = decode_secret(secret_b32)
    except InvalidSecretFormat as e:
        logger.debug("TOTP validation failed: %s", e)
        return False

    candidate = _clean_code(code)
    if candidate is None or len(candidate) != p.digits:
        return False

    if at_time is None:
        at_time = time.time()
    counter = time_step_counter(at_time, p.period)
    for offset in range(-p.window, p.window + 1):
        test_counter = counter + offset
        if not 0 <= test_counter <= MAX_COUNTER:
            continue
        expected = compute_hotp(key, test_counter, p.algorithm, p.digits)
        if hmac.compare_digest(expected, candidate):
            return True
    return False


def time_remaining(period: int = DEFAULT_TIME_STEP, at_time: Optional[float] = None) -> int:
    """Seconds until the code of the current period expires (1..period)."""
    if at_time is None:
        at_time = time.time()
    return period - (math.floor(at_time) % period)


def generate_totp_range(
    secret_b32: str,
    periods: int = 3,
    params: Optional[TOTPParams] = None,
    at_time: Optional[float] = None,
) -> List[TOTPWindow]:
    """
    Codes for the periods around at_time, handy for debugging clock drift.

    Covers slots current - periods//2 .. current + periods//2; slots
    before the epoch or ending after MAX_TIMESTAMP are skipped.
    """
    p = params if params is not None else TOTPParams()
    key = decode_secret(secret_b32)
    if at_time is None:
        at_time = time.time()

    current = time_step_counter(at_time, p.period)
    half = max(periods, 0) // 2
    results = []
    for slot in range(current - half, current + half + 1):
        if slot < 0 or (slot + 1) * p.period > MAX_TIMESTAMP:
            continue
        start = slot * p.period
        results.append(
            TOTPWindow(
                code=compute_hotp(key, slot, p.algorithm, p.digits),
                time_slot=slot,
                valid_from=datetime.fromtimestamp(start, tz=timezone.utc),
                valid_to=datetime.fromtimestamp(start + p.period, tz=timezone.utc),
            )
        )
    return results
