"""
ACCOUNT DIRECTORY API ROUTES - VERSION 2

Accounts live in the sqlite directory (totp_database); the client only
ever sends the secret once, at enrollment.

Examples:
- POST   /api/v2/accounts                 {"uri": "otpauth://totp/..."}
- GET    /api/v2/accounts
- GET    /api/v2/accounts/1/code
- GET    /api/v2/accounts/1/qr_code
- DELETE /api/v2/accounts/1
"""

import base64
import io
import logging

import qrcode
from flask import Blueprint, abort, current_app, jsonify, request

from totp_core import otp_core
from totp_core.errors import OTPError
from totp_core.otp_core import TOTPParams
from totp_core.otpauth_uri import build_provisioning_uri, parse_provisioning_uri
from totp_database import db_manager

from .routes import at_time_from, json_body, require

logger = logging.getLogger(__name__)

otp_bp_v2 = Blueprint('otp_v2', __name__, url_prefix='/api/v2')


def _db() -> str:
    return current_app.config["DATABASE_FILE"]


def _public(account_id: int) -> dict:
    """Account metadata without the secret."""
    return db_manager.get_account_record(account_id, _db())


@otp_bp_v2.route('/accounts', methods=['POST'])
def add_account():
    """
    Enroll an account.

    Body, either:
      {"uri": "otpauth://totp/Example:alice?secret=...", "strict": false}
    or:
      {"account": "alice@example.com", "issuer": "Example", "secret": "...",
       "algorithm": "SHA1", "digits": 6, "period": 30}
    A missing "secret" in the second form gets a freshly generated one.
    """
    data = json_body()
    if data.get("uri"):
        descriptor = parse_provisioning_uri(data["uri"], strict=bool(data.get("strict", False)))
    else:
        require(data, "account")
        secret = data.get("secret") or otp_core.generate_secret()
        issuer = str(data.get("issuer") or "")
        try:
            uri = build_provisioning_uri(issuer, str(data["account"]), secret, TOTPParams.from_mapping(data))
        except OTPError:
            raise
        except ValueError as e:
            abort(400, description=str(e))
        descriptor = parse_provisioning_uri(uri)

    # the stored account must be exportable again
    try:
        uri = descriptor.to_uri()
    except OTPError:
        raise
    except ValueError as e:
        abort(400, description=str(e))

    account_id = db_manager.add_account(descriptor, _db())
    return jsonify({
        "message": "Account created successfully",
        "account": _public(account_id),
        "uri": uri,
    }), 201


@otp_bp_v2.route('/accounts', methods=['GET'])
def list_accounts():
    return jsonify({"accounts": db_manager.list_accounts(_db())})


@otp_bp_v2.route('/accounts/<int:account_id>', methods=['GET'])
def get_account(account_id):
    return jsonify({"account": _public(account_id)})


@otp_bp_v2.route('/accounts/<int:account_id>', methods=['DELETE'])
def delete_account(account_id):
    if not db_manager.delete_account(account_id, _db()):
        return jsonify({"error": f"Account {account_id} not found"}), 404
    return jsonify({"deleted": True, "id": account_id})


@otp_bp_v2.route('/accounts/<int:account_id>/code', methods=['GET'])
def get_code(account_id):
    """
    Current code for an account.

    TOTP: {"code", "remaining", "period"}   (optional ?at_time=epoch)
    HOTP: {"code", "counter"}               (the stored counter moves on by one)
    """
    descriptor = db_manager.get_account(account_id, _db())
    if descriptor.otp_type == "hotp":
        counter = descriptor.counter or 0
        if counter >= otp_core.MAX_COUNTER:
            abort(409, description="HOTP counter exhausted")
        code = otp_core.hotp(descriptor.secret, counter, descriptor.params)
        db_manager.set_counter(account_id, counter + 1, _db())
        payload = {"code": code, "counter": counter}
    else:
        now = at_time_from(request.args)
        payload = {
            "code": otp_core.generate_totp(descriptor.secret, descriptor.params, at_time=now),
            "remaining": otp_core.time_remaining(descriptor.period, at_time=now),
            "period": descriptor.period,
        }
    db_manager.touch_account(account_id, _db())
    payload["id"] = account_id
    return jsonify(payload)


@otp_bp_v2.route('/accounts/<int:account_id>/otpauth_uri', methods=['GET'])
def get_otpauth_uri(account_id):
    """Export URI (contains the secret)."""
    descriptor = db_manager.get_account(account_id, _db())
    logger.info("otpauth URI exported for account %d", account_id)
    return jsonify({"uri": descriptor.to_uri(), "id": account_id})


@otp_bp_v2.route('/accounts/<int:account_id>/qr_code', methods=['GET'])
def get_qr_code(account_id):
    """
    QR code image (PNG data URI) of the export URI, for moving the
    account to another authenticator app.
    """
    descriptor = db_manager.get_account(account_id, _db())

    qr = qrcode.QRCode(
        version=1,
        box_size=current_app.config["QR_BOX_SIZE"],
        border=current_app.config["QR_BORDER"],
    )
    qr.add_data(descriptor.to_uri())
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    # Convert to base64
    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    img_str = base64.b64encode(buffer.getvalue()).decode()

    logger.info("QR code exported for account %d", account_id)
    return jsonify({
        "qr_code": f"data:image/png;base64,{img_str}",
        "id": account_id,
    })
