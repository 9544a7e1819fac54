"""Bootstrap configuration from environment variables.

Runtime settings (target user, persisted API key, page size) live in the
database, see ``warera.settings``. This module only holds what is needed
before the database can be opened.
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_ENDPOINT = "https://api2.warera.io/trpc"


class EnvConfig(BaseSettings):
    """Settings loaded from ``WARERA_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="WARERA_")

    # Remote API
    api_endpoint: str = DEFAULT_API_ENDPOINT
    request_timeout: float = 30.0  # Seconds per request
    api_key: Optional[str] = None  # Seeds the session-scoped key

    # Storage
    data_dir: Path = Path("data")
    database_path: Optional[Path] = None  # Defaults to <data_dir>/warera.db

    # Reference cache
    cache_timeout_seconds: float = 5.0

    @property
    def resolved_database_path(self) -> Path:
        return self.database_path or self.data_dir / "warera.db"


config = EnvConfig()
