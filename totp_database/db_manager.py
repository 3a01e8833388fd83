"""
Account directory + secret store on top of sqlite3.

The OTP engine never persists anything itself; callers go through the
functions below:

- secret store:      save_secret / load_secret / delete_secret (raw bytes by id)
- account directory: add_account / list_accounts / get_account /
                     delete_account / touch_account / set_counter

Secrets are stored as raw bytes. Encrypting them at rest is left to the
deployment (encrypted volume, SQLCipher, ...).
"""

import logging
import os
import sqlite3
from datetime import datetime
from typing import List, Optional

from totp_core.otp_core import MAX_COUNTER, decode_secret, encode_secret
from totp_core.otpauth_uri import AccountDescriptor

from .setup_database import setup_database

logger = logging.getLogger(__name__)

DATABASE_FILE = "totp_accounts.db"

_ACCOUNT_COLUMNS = (
    "id, otp_type, label, issuer, account_name, algorithm, digits, period, "
    "counter, created_at, last_used"
)


class SecretNotFound(LookupError):
    """No account / secret stored under the requested id."""


def get_db_connection(path: str = DATABASE_FILE):
    """Connect to the database, creating the schema on first use."""
    if not os.path.exists(path):
        setup_database(path)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row  # rows behave like dicts
    return conn


def _now() -> str:
    return datetime.now().strftime('%Y-%m-%d %H:%M:%S')


def _counter_text(counter: Optional[int]) -> Optional[str]:
    return None if counter is None else str(counter)


def _record(row) -> dict:
    record = dict(row)
    if record["counter"] is not None:
        record["counter"] = int(record["counter"])
    return record


# --- Secret store ----------------------------------------------------------
def save_secret(secret_id: str, secret_bytes: bytes, path: str = DATABASE_FILE) -> None:
    """Store (or replace) the raw key bytes under secret_id."""
    if not secret_bytes:
        raise ValueError("secret_bytes must not be empty")
    conn = get_db_connection(path)
    try:
        conn.execute(
            "INSERT OR REPLACE INTO secrets (id, secret, updated_at) VALUES (?, ?, ?)",
            (str(secret_id), bytes(secret_bytes), _now()),
        )
        conn.commit()
    finally:
        conn.close()


def load_secret(secret_id: str, path: str = DATABASE_FILE) -> bytes:
    """Raw key bytes for secret_id; raises SecretNotFound if absent."""
    conn = get_db_connection(path)
    try:
        row = conn.execute("SELECT secret FROM secrets WHERE id = ?", (str(secret_id),)).fetchone()
    finally:
        conn.close()
    if row is None:
        raise SecretNotFound(f"No secret stored for id {secret_id!r}")
    return bytes(row["secret"])


def delete_secret(secret_id: str, path: str = DATABASE_FILE) -> bool:
    conn = get_db_connection(path)
    try:
        cursor = conn.execute("DELETE FROM secrets WHERE id = ?", (str(secret_id),))
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


# --- Account directory -----------------------------------------------------
def add_account(descriptor: AccountDescriptor, path: str = DATABASE_FILE) -> int:
    """
    Insert an account and its secret in one transaction.

    Returns:
        int: the new account id (also the secret store id, as a string)

    Raises:
        InvalidSecretFormat: descriptor.secret does not decode
    """
    secret_bytes = decode_secret(descriptor.secret)
    conn = get_db_connection(path)
    try:
        cursor = conn.cursor()
        cursor.execute(
            """INSERT INTO accounts
               (otp_type, label, issuer, account_name, algorithm, digits, period, counter)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                descriptor.otp_type,
                descriptor.label,
                descriptor.issuer,
                descriptor.account_name,
                descriptor.algorithm,
                descriptor.digits,
                descriptor.period,
                _counter_text(descriptor.counter),
            ),
        )
        account_id = cursor.lastrowid
        cursor.execute(
            "INSERT OR REPLACE INTO secrets (id, secret, updated_at) VALUES (?, ?, ?)",
            (str(account_id), secret_bytes, _now()),
        )
        conn.commit()
    finally:
        conn.close()

    logger.info("Account %d added (%s, issuer=%r)", account_id, descriptor.otp_type, descriptor.issuer)
    return account_id


def list_accounts(path: str = DATABASE_FILE) -> List[dict]:
    """Account metadata, oldest first. Secrets are not included."""
    conn = get_db_connection(path)
    try:
        rows = conn.execute(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts ORDER BY id").fetchall()
    finally:
        conn.close()
    return [_record(row) for row in rows]


def get_account_record(account_id: int, path: str = DATABASE_FILE) -> dict:
    """Metadata row for one account; raises SecretNotFound if absent."""
    conn = get_db_connection(path)
    try:
        row = conn.execute(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = ?", (account_id,)
        ).fetchone()
    finally:
        conn.close()
    if row is None:
        raise SecretNotFound(f"Account {account_id} not found")
    return _record(row)


def get_account(account_id: int, path: str = DATABASE_FILE) -> AccountDescriptor:
    """Full descriptor (secret re-encoded as Base32) for code generation."""
    record = get_account_record(account_id, path)
    secret_bytes = load_secret(str(account_id), path)
    return AccountDescriptor(
        otp_type=record["otp_type"],
        label=record["label"],
        secret=encode_secret(secret_bytes),
        account_name=record["account_name"],
        issuer=record["issuer"],
        algorithm=record["algorithm"],
        digits=record["digits"],
        period=record["period"],
        counter=record["counter"],
    )


def delete_account(account_id: int, path: str = DATABASE_FILE) -> bool:
    """Remove the account and its secret. Returns False if it did not exist."""
    conn = get_db_connection(path)
    try:
        cursor = conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
        conn.execute("DELETE FROM secrets WHERE id = ?", (str(account_id),))
        conn.commit()
        deleted = cursor.rowcount > 0
    finally:
        conn.close()
    if deleted:
        logger.info("Account %d deleted", account_id)
    return deleted


def touch_account(account_id: int, path: str = DATABASE_FILE) -> None:
    """Record that a code was just shown for this account."""
    conn = get_db_connection(path)
    try:
        conn.execute("UPDATE accounts SET last_used = ? WHERE id = ?", (_now(), account_id))
        conn.commit()
    finally:
        conn.close()


def set_counter(account_id: int, counter: int, path: str = DATABASE_FILE) -> None:
    """
    Persist the next HOTP counter for an account.

    Raises:
        ValueError: counter outside [0, 2^64)
        SecretNotFound: no such account
    """
    if not 0 <= counter <= MAX_COUNTER:
        raise ValueError(f"Counter out of range: {counter}")
    conn = get_db_connection(path)
    try:
        cursor = conn.execute(
            "UPDATE accounts SET counter = ? WHERE id = ?", (_counter_text(counter), account_id)
        )
        conn.commit()
        if cursor.rowcount == 0:
            raise SecretNotFound(f"Account {account_id} not found")
    finally:
        conn.close()
