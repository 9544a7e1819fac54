"""
ApiKeyStore - API key held in one of two scopes.

Usage:
    store = ApiKeyStore()
    await store.set('key', persistent=True)   # survives restarts
    await store.set('key', persistent=False)  # process lifetime only
    key = await store.get()

The session scope wins when both scopes hold a key. Storing a key in one
scope clears the other.
"""

import logging
from typing import TYPE_CHECKING, Optional

from warera.errors import RemoteError
from warera.settings import Settings

if TYPE_CHECKING:
    from warera.client import RemoteClient

logger = logging.getLogger(__name__)

API_KEY_SETTING = "api_key"

# Probe used to validate a key; any non-401 answer means the header was accepted
PROBE_PROCEDURE = "transaction.getPaginatedTransactions"


class ApiKeyStore:
    """API key storage with session and persistent scopes."""

    def __init__(self, settings: Optional[Settings] = None, session_key: Optional[str] = None):
        """
        Args:
            settings: Settings used for the persistent scope (singleton if None)
            session_key: Initial session-scoped key (e.g., from WARERA_API_KEY)
        """
        self._settings = settings or Settings()
        self._session_key = session_key or None

    async def get(self) -> Optional[str]:
        """Return the active key, session scope first."""
        if self._session_key:
            return self._session_key
        stored = await self._settings.get(API_KEY_SETTING)
        return stored or None

    async def scope(self) -> Optional[str]:
        """"session", "persistent" or None when no key is configured."""
        if self._session_key:
            return "session"
        if await self._settings.get(API_KEY_SETTING):
            return "persistent"
        return None

    async def set(self, api_key: str, persistent: bool = False) -> None:
        """Store a key in one scope and clear the other."""
        if persistent:
            await self._settings.set(API_KEY_SETTING, api_key)
            self._session_key = None
        else:
            self._session_key = api_key
            await self._settings.delete(API_KEY_SETTING)
        logger.info(f"API key stored ({'persistent' if persistent else 'session'} scope)")

    async def clear(self) -> None:
        """Forget the key in both scopes."""
        self._session_key = None
        await self._settings.delete(API_KEY_SETTING)


async def check_api_key(client: "RemoteClient", api_key: str, user_id: Optional[str] = None) -> bool:
    """
    Check whether the API accepts a key.

    Sends a small transaction query with the candidate key. A 401 or an
    unreachable server means invalid; any other answer (including a 404 for
    an unknown user) means the key itself was accepted.
    """
    try:
        await client.call(
            PROBE_PROCEDURE,
            {"userId": user_id, "limit": 10, "transactionType": "trading"},
            api_key=api_key,
        )
    except RemoteError as e:
        if e.status is None or e.status == 401:
            logger.warning(f"API key rejected: {e}")
            return False
    return True
