"""Database adapters."""

from sigma_signet.adapters.db.app_db import AppDatabase

__all__ = ["AppDatabase"]
