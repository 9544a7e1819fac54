"""
Database - Single source of truth for all local storage.

Usage:
    db = Database()
    await db.connect()
    await db.upsert_transactions(items)
    last = await db.get_most_recent_timestamp()
    await db.set_setting('target_user_id', '64f...')
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

import aiosqlite

from warera.database.base import BaseDatabase, storage_errors
from warera.errors import StorageError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class Database(BaseDatabase):
    """Single source of truth for all database operations."""

    _instances: dict[str, "Database"] = {}  # path -> instance
    _default_path: str = None

    def __new__(cls, path: str = None):
        """
        Singleton pattern per path - one database instance per unique path.

        Args:
            path: Database file path. If None, uses the configured path.
        """
        if path is None:
            if cls._default_path is None:
                from warera.config import config

                cls._default_path = str(config.resolved_database_path)
            path = cls._default_path

        path = str(path)
        if path not in cls._instances:
            instance = super().__new__(cls)
            instance._path = Path(path)
            instance._connection = None
            cls._instances[path] = instance

        return cls._instances[path]

    def __init__(self, path: str = None):
        # Path is already set in __new__, nothing to do here
        pass

    @property
    def path(self) -> Path:
        return self._path

    async def connect(self) -> "Database":
        """Connect to database and initialize schema."""
        if self._connection is None:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._connection = await aiosqlite.connect(self._path)
                self._connection.row_factory = aiosqlite.Row
                await self._connection.execute("PRAGMA journal_mode=WAL")
                await self._connection.execute("PRAGMA busy_timeout=30000")
                await self._init_schema()
            except (OSError, sqlite3.Error) as e:
                if self._connection is not None:
                    await self._connection.close()
                    self._connection = None
                raise StorageError(f"Failed to open database {self._path}: {e}") from e
            logger.debug(f"Connected to {self._path}")
        return self

    async def close(self):
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def remove_from_cache(self):
        """Remove this instance from the singleton cache. Use for temporary databases."""
        path_str = str(self._path)
        if path_str in self._instances:
            del self._instances[path_str]

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a setting value by key."""
        with storage_errors("read setting"):
            cursor = await self.conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = await cursor.fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except (json.JSONDecodeError, TypeError):
            return row["value"]

    async def set_setting(self, key: str, value: Any) -> None:
        """Set a setting value."""
        # Strings are JSON-encoded too, so ids like "1e5" come back as strings
        json_value = json.dumps(value)
        with storage_errors("write setting"):
            await self.conn.execute("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, json_value))
            await self.conn.commit()

    async def delete_setting(self, key: str) -> None:
        """Remove a setting."""
        with storage_errors("delete setting"):
            await self.conn.execute("DELETE FROM settings WHERE key = ?", (key,))
            await self.conn.commit()

    async def get_all_settings(self) -> dict:
        """Get all settings as a dictionary."""
        with storage_errors("read settings"):
            cursor = await self.conn.execute("SELECT key, value FROM settings")
            rows = await cursor.fetchall()
        result = {}
        for row in rows:
            try:
                result[row["key"]] = json.loads(row["value"])
            except (json.JSONDecodeError, TypeError):
                result[row["key"]] = row["value"]
        return result

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    async def get_schema_version(self) -> int:
        cursor = await self.conn.execute("PRAGMA user_version")
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def _init_schema(self) -> None:
        """Initialize database schema."""
        await self.conn.executescript(SCHEMA)
        await self._apply_migrations()
        await self.conn.commit()

    async def _apply_migrations(self) -> None:
        """Bring an existing database up to SCHEMA_VERSION. Additive and idempotent."""
        cursor = await self.conn.execute("PRAGMA table_info(transactions)")
        columns = {row[1] for row in await cursor.fetchall()}

        # Add missing columns
        migrations = [
            ("transaction_type", "ALTER TABLE transactions ADD COLUMN transaction_type TEXT"),
            ("item_code", "ALTER TABLE transactions ADD COLUMN item_code TEXT"),
        ]

        for col_name, sql in migrations:
            if col_name not in columns:
                await self.conn.execute(sql)

        await self.conn.executescript(INDEXES)

        version = await self.get_schema_version()
        if version < SCHEMA_VERSION:
            logger.info(f"Migrating database schema from v{version} to v{SCHEMA_VERSION}")
            await self.conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")


SCHEMA = """
-- Settings (key-value store)
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Transaction history synced from the API
CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,  -- API _id
    created_at TEXT NOT NULL,  -- Canonical ISO UTC (YYYY-MM-DDTHH:MM:SS.mmmZ)
    transaction_type TEXT,
    buyer_id TEXT,
    seller_id TEXT,
    item_code TEXT,
    money REAL NOT NULL DEFAULT 0,
    quantity REAL NOT NULL DEFAULT 0,
    data TEXT NOT NULL  -- Normalized API record (JSON)
);
"""

INDEXES = """
CREATE INDEX IF NOT EXISTS idx_transactions_created_at ON transactions(created_at);
CREATE INDEX IF NOT EXISTS idx_transactions_type ON transactions(transaction_type);
"""
