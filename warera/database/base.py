"""
Base Database - Transaction history operations.

Records are kept as received from the API (normalized) in the ``data``
column; the remaining columns exist for indexing and aggregation.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterable, Iterator, Optional, Union

import aiosqlite

from warera.errors import StorageError, ValidationError
from warera.utils.dates import day_bounds, humanize_timestamp, normalize_timestamp, utc_now
from warera.utils.numbers import to_number


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Re-raise sqlite failures as StorageError."""
    try:
        yield
    except sqlite3.Error as e:
        raise StorageError(f"Failed to {action}: {e}") from e


def transaction_id(record: dict) -> str:
    """Primary key of an API transaction record (``_id``, falling back to ``id``)."""
    tx_id = record.get("_id") or record.get("id")
    if tx_id is None or tx_id == "":
        raise ValidationError("Transaction record has no id")
    return str(tx_id)


def normalize_transaction(record: dict, now: Optional[datetime] = None) -> dict:
    """
    Normalize a transaction before it is written.

    ``money`` and ``quantity`` are coerced to numbers (invalid or missing -> 0)
    and ``createdAt`` is rewritten in canonical ISO UTC form. A missing
    ``createdAt`` is replaced by ``now`` (the ingestion time).

    Args:
        record: Raw transaction from the API
        now: Ingestion time used for records without createdAt

    Returns:
        New dict; the input is not modified
    """
    normalized = dict(record)
    normalized["money"] = to_number(record.get("money"))
    normalized["quantity"] = to_number(record.get("quantity"))
    normalized["createdAt"] = normalize_timestamp(record.get("createdAt"), default=now)
    return normalized


def _optional_str(value) -> Optional[str]:
    return None if value is None else str(value)


class BaseDatabase:
    """Base class with transaction history operations."""

    _connection: Optional[aiosqlite.Connection] = None

    @property
    def conn(self) -> aiosqlite.Connection:
        """Get database connection."""
        if not self._connection:
            raise StorageError("Database not connected. Call connect() first.")
        return self._connection

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def upsert_transactions(self, records: Iterable[dict]) -> int:
        """
        Insert or overwrite transactions by id, as one atomic batch.

        Every record is normalized before anything is written, so an invalid
        record rejects the whole batch without touching the database. A write
        failure rolls back the batch.

        Args:
            records: Raw transaction records from the API

        Returns:
            Number of records written

        Raises:
            ValidationError: If a record has no id or an unparseable createdAt
            StorageError: If the write fails (nothing from the batch is kept)
        """
        now = utc_now()
        rows = []
        for record in records:
            tx = normalize_transaction(record, now=now)
            rows.append(
                (
                    transaction_id(tx),
                    tx["createdAt"],
                    _optional_str(tx.get("transactionType")),
                    _optional_str(tx.get("buyerId")),
                    _optional_str(tx.get("sellerId")),
                    _optional_str(tx.get("itemCode")),
                    tx["money"],
                    tx["quantity"],
                    json.dumps(tx, default=str),
                )
            )

        if not rows:
            return 0

        try:
            await self.conn.executemany(
                """INSERT OR REPLACE INTO transactions
                   (id, created_at, transaction_type, buyer_id, seller_id, item_code, money, quantity, data)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                rows,
            )
            await self.conn.commit()
        except Exception as e:
            # Any failure, not only sqlite3.Error, must drop the rows already
            # written or the next commit on this connection would keep them.
            await self.conn.rollback()
            raise StorageError(f"Failed to save {len(rows)} transactions: {e}") from e

        return len(rows)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_transaction(self, tx_id: str) -> Optional[dict]:
        """Get a stored transaction by id."""
        with storage_errors("read transaction"):
            cursor = await self.conn.execute("SELECT data FROM transactions WHERE id = ?", (str(tx_id),))
            row = await cursor.fetchone()
        return json.loads(row["data"]) if row else None

    async def get_most_recent_timestamp(self) -> Optional[str]:
        """createdAt of the newest stored transaction, or None if empty."""
        with storage_errors("read most recent timestamp"):
            cursor = await self.conn.execute(
                "SELECT created_at FROM transactions ORDER BY created_at DESC LIMIT 1"
            )
            row = await cursor.fetchone()
        return row["created_at"] if row else None

    async def get_oldest_timestamp(self) -> Optional[str]:
        """createdAt of the oldest stored transaction, or None if empty."""
        with storage_errors("read oldest timestamp"):
            cursor = await self.conn.execute("SELECT created_at FROM transactions ORDER BY created_at ASC LIMIT 1")
            row = await cursor.fetchone()
        return row["created_at"] if row else None

    async def count_transactions(self) -> int:
        """Total number of stored transactions."""
        with storage_errors("count transactions"):
            cursor = await self.conn.execute("SELECT COUNT(*) FROM transactions")
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def get_transactions_for_period(
        self,
        start_date: Union[str, date],
        end_date: Union[str, date],
    ) -> list[dict]:
        """
        Get all transactions created within a calendar-date range.

        Args:
            start_date: First day (YYYY-MM-DD), from 00:00:00.000 UTC
            end_date: Last day (YYYY-MM-DD), up to 23:59:59.999 UTC

        Returns:
            Stored records, oldest first
        """
        lower, upper = day_bounds(start_date, end_date)
        with storage_errors("query transactions"):
            cursor = await self.conn.execute(
                "SELECT data FROM transactions WHERE created_at BETWEEN ? AND ? ORDER BY created_at",
                (lower, upper),
            )
            rows = await cursor.fetchall()
        return [json.loads(row["data"]) for row in rows]

    async def get_overview(self) -> dict:
        """Transaction count and newest timestamp, for status displays."""
        total = await self.count_transactions()
        last = await self.get_most_recent_timestamp()
        return {
            "total_transactions": total,
            "last_update": last,
            "last_update_human": humanize_timestamp(last),
        }

    async def get_stats(self) -> dict:
        """Like get_overview, but reports zero counts instead of raising StorageError."""
        try:
            return await self.get_overview()
        except StorageError:
            return {"total_transactions": 0, "last_update": None, "last_update_human": None}
