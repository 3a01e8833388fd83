import os

from dotenv import load_dotenv

# Read .env before the Config class body runs
load_dotenv()


class Config:
    SECRET_KEY = os.environ.get("TOTP_SECRET_KEY", "totp-dev-secret-key")

    # sqlite file holding the account directory + secret store
    DATABASE_FILE = os.environ.get("TOTP_DATABASE_FILE", "totp_accounts.db")

    # Comma separated list, "*" allows every origin
    CORS_ORIGINS = os.environ.get("TOTP_CORS_ORIGINS", "*")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # QR export (qrcode.QRCode arguments)
    QR_BOX_SIZE = int(os.environ.get("TOTP_QR_BOX_SIZE", "10"))
    QR_BORDER = int(os.environ.get("TOTP_QR_BORDER", "5"))
