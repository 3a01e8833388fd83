"""
Backend package: Flask JSON API over totp_core and totp_database.
"""

from .app import create_app

__all__ = ['create_app']
