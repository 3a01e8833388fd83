"""
Persistence for the authenticator: sqlite3 account directory and secret store.
"""

from .db_manager import (
    DATABASE_FILE,
    SecretNotFound,
    add_account,
    delete_account,
    delete_secret,
    get_account,
    get_account_record,
    list_accounts,
    load_secret,
    save_secret,
    set_counter,
    touch_account,
)

__all__ = [
    "DATABASE_FILE",
    "SecretNotFound",
    "add_account",
    "delete_account",
    "delete_secret",
    "get_account",
    "get_account_record",
    "list_accounts",
    "load_secret",
    "save_secret",
    "set_counter",
    "touch_account",
]
