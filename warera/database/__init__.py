"""
Database Package

Provides local storage for the WarEra transaction history and settings.
"""

from warera.database.base import BaseDatabase, normalize_transaction, transaction_id
from warera.database.main import SCHEMA_VERSION, Database

__all__ = ["Database", "BaseDatabase", "SCHEMA_VERSION", "normalize_transaction", "transaction_id"]
