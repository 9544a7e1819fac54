"""
Settings - Runtime configuration stored in the database.

Usage:
    settings = Settings()
    user_id = await settings.get('target_user_id')
    await settings.set('sync_page_size', 50)
    all_settings = await settings.all()
"""

from typing import Any

from warera.database import Database
from warera.utils.decorators import singleton

# Default settings - applied on first run, then editable through the API
DEFAULTS = {
    # Player whose history is synced and analysed
    "target_user_id": "",
    "target_user_name": "",
    # Persistent-scope API key ("" = none; the session scope lives in memory)
    "api_key": "",
    # Sync
    "sync_page_size": 100,  # Server-side cap on transaction.getPaginatedTransactions
    "last_sync_at": None,  # ISO timestamp of the last successful run
}


@singleton
class Settings:
    """Single source of truth for application settings."""

    _db: "Database"

    def __init__(self):
        self._db = Database()

    def use_database(self, db: Database) -> "Settings":
        """Point the shared instance at ``db`` (replaces any earlier database)."""
        self._db = db
        return self

    async def get(self, key: str, default: Any = None) -> Any:
        """Get a setting value."""
        value = await self._db.get_setting(key)
        if value is None:
            return default if default is not None else DEFAULTS.get(key)
        return value

    async def set(self, key: str, value: Any) -> None:
        """Set a setting value."""
        await self._db.set_setting(key, value)

    async def delete(self, key: str) -> None:
        """Remove a stored value so the default applies again."""
        await self._db.delete_setting(key)

    async def all(self) -> dict:
        """Get all settings with defaults applied."""
        stored = await self._db.get_all_settings()
        result = DEFAULTS.copy()
        result.update(stored)
        return result

    async def init_defaults(self) -> None:
        """Initialize default settings if not already set."""
        for key, value in DEFAULTS.items():
            if value is None:
                continue
            existing = await self._db.get_setting(key)
            if existing is None:
                await self._db.set_setting(key, value)
