"""
WarEra ledger - Local transaction history and trading analytics for WarEra.

Usage:
    from warera import Database, RemoteClient, TransactionSync, aggregate

    db = Database()
    await db.connect()

    async with RemoteClient() as client:
        result = await TransactionSync(db, client).run(user_id)

    rows = await db.get_transactions_for_period('2024-01-01', '2024-01-31')
    summary = aggregate(rows, user_id)
"""

from warera.analysis import aggregate, analyze_period, group_by_day
from warera.client import RemoteClient
from warera.credentials import ApiKeyStore
from warera.database import Database
from warera.reference import ReferenceCache
from warera.settings import Settings
from warera.sync import SyncResult, TransactionSync
from warera.version import VERSION

__all__ = [
    "ApiKeyStore",
    "Database",
    "ReferenceCache",
    "RemoteClient",
    "Settings",
    "SyncResult",
    "TransactionSync",
    "VERSION",
    "aggregate",
    "analyze_period",
    "group_by_day",
]
