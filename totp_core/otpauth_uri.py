"""
otpauth_uri.py — parse / build otpauth:// provisioning URIs (QR payloads).

    otpauth://totp/{issuer}:{account}?secret=...&issuer=...&algorithm=SHA1&digits=6&period=30
    otpauth://hotp/{issuer}:{account}?secret=...&issuer=...&algorithm=SHA1&digits=6&counter=0

Producers are sloppy about the optional fields, so parsing is lenient:
a bad algorithm/digits/period falls back to the default instead of
refusing the whole QR code. Pass strict=True to get an error instead.
Scheme, type and secret are always required.
"""

from dataclasses import asdict, dataclass
from typing import Optional
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit
import logging

from . import otp_core
from .errors import InvalidSecretFormat, InvalidURIFormat, UnsupportedAlgorithm
from .otp_core import TOTPParams

logger = logging.getLogger(__name__)

SCHEME = "otpauth"
OTP_TYPES = ("totp", "hotp")


@dataclass(frozen=True)
class AccountDescriptor:
    otp_type: str
    label: str
    secret: str
    account_name: str
    issuer: Optional[str] = None
    algorithm: str = otp_core.DEFAULT_ALGORITHM
    digits: int = otp_core.DEFAULT_DIGITS
    period: int = otp_core.DEFAULT_TIME_STEP
    counter: Optional[int] = None  # hotp only

    @property
    def params(self) -> TOTPParams:
        return TOTPParams(algorithm=self.algorithm, digits=self.digits, period=self.period)

    def to_dict(self) -> dict:
        return asdict(self)

    def to_uri(self) -> str:
        return build_provisioning_uri(
            self.issuer or "",
            self.account_name,
            self.secret,
            self.params,
            otp_type=self.otp_type,
            counter=self.counter or 0,
        )


def _first(query: dict, key: str) -> Optional[str]:
    values = query.get(key)
    return values[0] if values else None


def _split_label(label: str, issuer: str):
    """
    Returns (issuer, account_name) from the label and the issuer parameter.

    - no issuer param, "Example:alice" -> ("Example", "alice")
    - issuer param,    "Example:alice" -> (param, "alice")
    - no colon                         -> (param or "", label)

    Both parts are kept as written, spaces included.
    """
    if ":" not in label:
        return issuer, label
    prefix, _, rest = label.partition(":")
    if not issuer:
        return prefix, rest
    return issuer, rest or prefix


def parse_provisioning_uri(uri: str, strict: bool = False) -> AccountDescriptor:
    """
    Parse an otpauth:// URI into an AccountDescriptor.

    Arguments:
        uri: raw QR payload / pasted URI
        strict: reject bad algorithm/digits/period instead of defaulting them

    Raises:
        InvalidURIFormat: wrong scheme or type, missing/invalid secret,
            malformed HOTP counter (and, in strict mode, bad digits/period)
        UnsupportedAlgorithm: strict mode only
    """
    if not isinstance(uri, str) or not uri.strip():
        raise InvalidURIFormat("URI must be a non-empty string")
    try:
        parts = urlsplit(uri.strip())
    except ValueError as e:
        raise InvalidURIFormat(f"Malformed URI: {e}") from e

    if parts.scheme != SCHEME:
        raise InvalidURIFormat("Invalid OTPAuth URL protocol")
    otp_type = parts.netloc.lower()
    if otp_type not in OTP_TYPES:
        raise InvalidURIFormat("Unsupported OTP type. Only TOTP and HOTP are supported")

    query = parse_qs(parts.query, keep_blank_values=True)
    raw_secret = _first(query, "secret")
    if not raw_secret or not raw_secret.strip():
        raise InvalidURIFormat("Secret parameter is required")
    try:
        secret = otp_core.clean_secret(raw_secret)
    except InvalidSecretFormat as e:
        raise InvalidURIFormat(f"Invalid secret format: {e}") from e

    label = unquote(parts.path[1:] if parts.path.startswith("/") else parts.path)
    issuer, account_name = _split_label(label, _first(query, "issuer") or "")

    raw_algorithm = _first(query, "algorithm")
    raw_digits = _first(query, "digits")
    raw_period = _first(query, "period")
    algorithm = otp_core.normalize_algorithm(raw_algorithm)
    digits = otp_core.normalize_digits(raw_digits)
    period = otp_core.normalize_period(raw_period)
    if strict:
        if raw_algorithm is not None and not otp_core.is_supported_algorithm(raw_algorithm):
            raise UnsupportedAlgorithm(f"Unsupported algorithm: {raw_algorithm!r}")
        if raw_digits is not None and otp_core.coerce_int(raw_digits) != digits:
            raise InvalidURIFormat(f"Invalid digits: {raw_digits!r}")
        if raw_period is not None and otp_core.coerce_int(raw_period) != period:
            raise InvalidURIFormat(f"Invalid period: {raw_period!r}")

    counter = None
    if otp_type == "hotp":
        raw_counter = _first(query, "counter")
        if raw_counter is None or not raw_counter.strip():
            counter = 0
        else:
            counter = otp_core.coerce_int(raw_counter)
            if counter is None or not 0 <= counter <= otp_core.MAX_COUNTER:
                raise InvalidURIFormat(f"Invalid HOTP counter: {raw_counter!r}")

    logger.debug("Parsed %s URI (issuer=%r, algorithm=%s, digits=%d, period=%d)",
                 otp_type, issuer, algorithm, digits, period)
    return AccountDescriptor(
        otp_type=otp_type,
        label=label,
        secret=secret,
        account_name=account_name,
        issuer=issuer or None,
        algorithm=algorithm,
        digits=digits,
        period=period,
        counter=counter,
    )


def build_provisioning_uri(
    issuer: str,
    account_name: str,
    secret_b32: str,
    params: Optional[TOTPParams] = None,
    otp_type: str = "totp",
    counter: int = 0,
) -> str:
    """
    Build an otpauth:// URI that authenticator apps can import.

    The label is "issuer:account_name" with each part percent-encoded on
    its own and a literal ":" between them (pyotp and Google Authenticator
    split on it before unquoting). `issuer` is repeated as a query parameter
    and left out entirely when empty.

    Raises:
        InvalidSecretFormat: secret does not decode
        ValueError: issuer contains ':', empty account_name, ':' in
            account_name without an issuer, unknown otp_type, bad counter
    """
    secret = otp_core.clean_secret(secret_b32)
    p = params if params is not None else TOTPParams()
    otp_type = (otp_type or "").lower()
    if otp_type not in OTP_TYPES:
        raise ValueError(f"Unsupported OTP type: {otp_type!r}")
    issuer = issuer or ""
    if ":" in issuer:
        raise ValueError("Issuer must not contain ':'")
    if not account_name:
        raise ValueError("Account name is required")
    if not issuer and ":" in account_name:
        # would be read back as "issuer:account"
        raise ValueError("Account name must not contain ':' when there is no issuer")

    label = quote(account_name, safe='')
    if issuer:
        label = f"{quote(issuer, safe='')}:{label}"
    query = [("secret", secret)]
    if issuer:
        query.append(("issuer", issuer))
    query.append(("algorithm", p.algorithm))
    query.append(("digits", str(p.digits)))
    if otp_type == "totp":
        query.append(("period", str(p.period)))
    else:
        if not 0 <= counter <= otp_core.MAX_COUNTER:
            raise ValueError(f"Counter out of range: {counter}")
        query.append(("counter", str(counter)))

    return f"{SCHEME}://{otp_type}/{label}?{urlencode(query, quote_via=quote)}"
