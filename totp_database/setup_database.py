import logging
import os
import sqlite3

logger = logging.getLogger(__name__)


def setup_database(path: str):
    """Create the accounts + secrets tables if they do not exist yet."""

    # Make sure the parent directory exists
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    conn = sqlite3.connect(path)
    try:
        cursor = conn.cursor()

        # Account directory: metadata only, the key lives in `secrets`.
        # counter is TEXT: HOTP counters are unsigned 64-bit, sqlite INTEGER is signed
        cursor.execute('''
        CREATE TABLE IF NOT EXISTS accounts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            otp_type TEXT NOT NULL DEFAULT 'totp',
            label TEXT NOT NULL DEFAULT '',
            issuer TEXT,
            account_name TEXT NOT NULL,
            algorithm TEXT NOT NULL DEFAULT 'SHA1',
            digits INTEGER NOT NULL DEFAULT 6,
            period INTEGER NOT NULL DEFAULT 30,
            counter TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            last_used TIMESTAMP
        )
        ''')

        # Secret store: raw key bytes by id
        cursor.execute('''
        CREATE TABLE IF NOT EXISTS secrets (
            id TEXT PRIMARY KEY,
            secret BLOB NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        ''')

        conn.commit()
    finally:
        conn.close()
    logger.info("Database schema ready at %s", path)


if __name__ == "__main__":
    from totp_database.db_manager import DATABASE_FILE

    logging.basicConfig(level=logging.INFO)
    setup_database(os.environ.get("TOTP_DATABASE_FILE", DATABASE_FILE))
