import base64

import pytest

from totp_backend import create_app

# RFC 4226 / RFC 6238 reference seeds (ASCII)
RFC_SEED_SHA1 = b"12345678901234567890"
RFC_SEED_SHA256 = b"12345678901234567890123456789012"
RFC_SEED_SHA512 = b"1234567890123456789012345678901234567890123456789012345678901234"

DEMO_SECRET = "JBSWY3DPEHPK3PXP"


def b32(raw: bytes) -> str:
    return base64.b32encode(raw).decode("ascii")


@pytest.fixture
def sha1_secret():
    return b32(RFC_SEED_SHA1)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "accounts.db")


@pytest.fixture
def app(db_path):
    return create_app({"TESTING": True, "DATABASE_FILE": db_path, "LOG_LEVEL": "WARNING"})


@pytest.fixture
def client(app):
    return app.test_client()
