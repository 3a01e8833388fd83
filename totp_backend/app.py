"""
FLASK APP ENTRY POINT - TOTP AUTHENTICATOR BACKEND
==================================================

Sets up the Flask app, CORS, logging, JSON error handlers and registers
the API blueprints.

- totp_backend/routes.py : stateless engine endpoints (/api/...)
- totp_backend/api_v2.py : account directory endpoints (/api/v2/accounts...)

Run locally:
    flask --app totp_backend run
    python -m totp_backend.app
"""

import logging

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from totp_core.errors import OTPError
from totp_database.db_manager import SecretNotFound

from .config import Config


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    app.logger.setLevel(level)


def register_error_handlers(app: Flask) -> None:
    """Every error leaves the API as JSON: {"error": "..."}."""

    @app.errorhandler(OTPError)
    def handle_otp_error(error):
        app.logger.info("%s %s rejected: %s", request.method, request.path, error)
        return jsonify({"error": str(error), "type": type(error).__name__}), 400

    @app.errorhandler(SecretNotFound)
    def handle_not_found(error):
        return jsonify({"error": str(error)}), 404

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        if error.code >= 500:
            app.logger.error("%s %s failed: %s", request.method, request.path, error)
        return jsonify({"error": error.description}), error.code


def create_app(overrides=None) -> Flask:
    """
    App factory.

    Arguments:
        overrides: mapping applied on top of Config (tests pass
                   {"TESTING": True, "DATABASE_FILE": tmp_path/...})
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    _configure_logging(app)

    # CORS so a separate frontend (or the mobile app in dev) can call the API
    origins = app.config["CORS_ORIGINS"]
    CORS(app, origins=origins if origins == "*" else [o.strip() for o in origins.split(",")])

    from .routes import otp_bp
    from .api_v2 import otp_bp_v2

    app.register_blueprint(otp_bp)
    app.register_blueprint(otp_bp_v2)
    register_error_handlers(app)

    @app.route('/', methods=['GET'])
    def index():
        """Service name + endpoint list."""
        endpoints = sorted(
            str(rule) for rule in app.url_map.iter_rules() if rule.endpoint != "static"
        )
        return jsonify({"service": "totp-authenticator", "endpoints": endpoints})

    app.logger.debug("App created (database=%s)", app.config["DATABASE_FILE"])
    return app


if __name__ == '__main__':
    create_app().run(debug=True, host='0.0.0.0', port=5000)
