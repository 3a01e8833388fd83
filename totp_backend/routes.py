"""
OTP ENGINE API ROUTES - FLASK BLUEPRINT

Stateless endpoints: the caller sends the secret and parameters in the
JSON body, nothing is stored server side.

EXAMPLES:
curl -X POST http://localhost:5000/api/secret -H "Content-Type: application/json" -d "{}"
curl -X POST http://localhost:5000/api/totp -H "Content-Type: application/json" \
     -d '{"secret": "JBSWY3DPEHPK3PXP", "digits": 6, "period": 30}'
"""

import math
import time

from flask import Blueprint, abort, jsonify, request

from totp_core import otp_core
from totp_core.errors import OTPError
from totp_core.otp_core import TOTPParams
from totp_core.otpauth_uri import build_provisioning_uri, parse_provisioning_uri

otp_bp = Blueprint('otp', __name__, url_prefix='/api')

MAX_LOOK_AHEAD = 100


# --- request helpers (shared with api_v2) ---
def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        abort(400, description="JSON object body required")
    return data


def require(data: dict, *keys: str) -> None:
    missing = [k for k in keys if data.get(k) in (None, "")]
    if missing:
        abort(400, description=f"Missing required field(s): {', '.join(missing)}")


def int_field(data, key: str, default=None) -> int:
    value = data.get(key, default)
    number = otp_core.coerce_int(value)
    if number is None:
        abort(400, description=f"'{key}' must be an integer")
    return number


def at_time_from(data) -> float:
    """
    'at_time' from the body / query string, current time when absent.

    Latest accepted time is otp_core.MAX_TIMESTAMP (end of year 9999).
    """
    value = data.get("at_time")
    if value is None:
        return time.time()
    if isinstance(value, bool):
        abort(400, description="'at_time' must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        abort(400, description="'at_time' must be a number")
    if not math.isfinite(number) or number < 0:
        abort(400, description="'at_time' must be a non-negative number")
    if number > otp_core.MAX_TIMESTAMP:
        abort(400, description="'at_time' must be before year 10000")
    return number


@otp_bp.route('/secret', methods=['POST'])
def generate_secret():
    """
    New random Base32 secret.

      curl -X POST http://localhost:5000/api/secret -H "Content-Type: application/json" -d '{"bytes": 20}'
    """
    data = json_body()
    num_bytes = int_field(data, "bytes", otp_core.SECRET_BYTES)
    try:
        secret = otp_core.generate_secret(num_bytes)
    except ValueError as e:
        abort(400, description=str(e))
    return jsonify({"secret": secret})


@otp_bp.route('/totp', methods=['POST'])
def get_totp():
    """
    Current TOTP code.

    Input: {"secret": "...", "algorithm": "SHA1", "digits": 6, "period": 30, "at_time": 59}
    Output: {"code": "...", "remaining": 1, "period": 30, "digits": 6, "algorithm": "SHA1"}
    """
    data = json_body()
    require(data, "secret")
    params = TOTPParams.from_mapping(data)
    now = at_time_from(data)

    code = otp_core.generate_totp(data["secret"], params, at_time=now)
    return jsonify({
        "code": code,
        "remaining": otp_core.time_remaining(params.period, at_time=now),
        "period": params.period,
        "digits": params.digits,
        "algorithm": params.algorithm,
    })


@otp_bp.route('/hotp', methods=['POST'])
def get_hotp():
    """
    HOTP code for a counter.

    Input: {"secret": "...", "counter": 1, "digits": 6}
    """
    data = json_body()
    require(data, "secret", "counter")
    counter = int_field(data, "counter")
    if not 0 <= counter <= otp_core.MAX_COUNTER:
        abort(400, description="'counter' out of range")

    code = otp_core.hotp(data["secret"], counter, TOTPParams.from_mapping(data))
    return jsonify({"code": code, "counter": counter})


@otp_bp.route('/verify_totp', methods=['POST'])
def verify_totp_route():
    """
    Verify a TOTP code.

    Input:
      {
        "code": "123456",     # required
        "secret": "...",      # required
        "digits": 6,
        "period": 30,
        "window": 1           # +/- periods tolerated
      }
    Output: {"valid": true} or {"valid": false}
    """
    data = json_body()
    require(data, "code", "secret")
    params = TOTPParams.from_mapping(data)
    valid = otp_core.validate_totp(
        str(data["code"]), data["secret"], params, at_time=at_time_from(data)
    )
    return jsonify({"valid": valid})


@otp_bp.route('/verify_hotp', methods=['POST'])
def verify_hotp_route():
    """
    Verify an HOTP code.

    Input: {"code": "...", "secret": "...", "counter": 1, "look_ahead": 1}
    Output: {"valid": true, "next_counter": 2} or {"valid": false}
    """
    data = json_body()
    require(data, "code", "secret", "counter")
    counter = int_field(data, "counter")
    look_ahead = int_field(data, "look_ahead", 1)
    if counter < 0:
        abort(400, description="'counter' out of range")
    if not 0 <= look_ahead <= MAX_LOOK_AHEAD:
        abort(400, description=f"'look_ahead' must be between 0 and {MAX_LOOK_AHEAD}")

    valid, next_counter = otp_core.verify_hotp(
        str(data["code"]), data["secret"], counter, TOTPParams.from_mapping(data), look_ahead=look_ahead
    )
    if valid:
        return jsonify({"valid": True, "next_counter": next_counter})
    return jsonify({"valid": False})


@otp_bp.route('/uri/parse', methods=['POST'])
def parse_uri():
    """
    Parse an otpauth:// URI (QR payload).

    Input: {"uri": "otpauth://totp/...", "strict": false}
    """
    data = json_body()
    require(data, "uri")
    descriptor = parse_provisioning_uri(data["uri"], strict=bool(data.get("strict", False)))
    return jsonify(descriptor.to_dict())


@otp_bp.route('/uri/build', methods=['POST'])
def build_uri():
    """
    Build an otpauth:// URI.

    Input: {"secret": "...", "account": "alice@example.com", "issuer": "Example",
            "algorithm": "SHA1", "digits": 6, "period": 30, "type": "totp", "counter": 0}
    """
    data = json_body()
    require(data, "secret", "account")
    try:
        uri = build_provisioning_uri(
            str(data.get("issuer") or ""),
            str(data["account"]),
            data["secret"],
            TOTPParams.from_mapping(data),
            otp_type=str(data.get("type") or "totp"),
            counter=int_field(data, "counter", 0),
        )
    except OTPError:
        raise
    except ValueError as e:
        abort(400, description=str(e))
    return jsonify({"uri": uri})


@otp_bp.route('/totp_range', methods=['POST'])
def totp_range():
    """
    Codes around the current period (debugging clock drift).

    Input: {"secret": "...", "periods": 3, "period": 30, "at_time": 1111111111}
    """
    data = json_body()
    require(data, "secret")
    periods = int_field(data, "periods", 3)
    if not 1 <= periods <= 21:
        abort(400, description="'periods' must be between 1 and 21")
    params = TOTPParams.from_mapping(data)

    windows = otp_core.generate_totp_range(
        data["secret"], periods, params, at_time=at_time_from(data)
    )
    return jsonify({"codes": [
        {
            "code": w.code,
            "time_slot": w.time_slot,
            "valid_from": w.valid_from.isoformat(),
            "valid_to": w.valid_to.isoformat(),
        }
        for w in windows
    ]})
