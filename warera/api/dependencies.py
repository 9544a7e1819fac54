"""FastAPI dependencies for API routers.

Provides the services shared by route handlers. The app lifespan builds them
once and registers them with set_common_deps().
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from fastapi import HTTPException

from warera.client import RemoteClient
from warera.config import config
from warera.credentials import ApiKeyStore
from warera.database import Database
from warera.errors import (
    CacheTimeoutError,
    ProtocolError,
    RemoteError,
    StorageError,
    SyncInProgressError,
    ValidationError,
)
from warera.reference import ReferenceCache
from warera.settings import Settings
from warera.sync import TransactionSync

logger = logging.getLogger(__name__)


@dataclass
class CommonDependencies:
    """Common dependencies used across API routes.

    Usage:
        @router.get("/endpoint")
        async def my_endpoint(deps: Annotated[CommonDependencies, Depends(get_common_deps)]):
            overview = await deps.db.get_stats()
            # ...
    """

    db: Database
    settings: Settings
    credentials: ApiKeyStore
    client: RemoteClient
    reference: ReferenceCache
    sync: TransactionSync


# Set by the app lifespan
_common_deps: Optional[CommonDependencies] = None


def set_common_deps(deps: Optional[CommonDependencies]) -> None:
    global _common_deps
    _common_deps = deps


async def get_common_deps() -> CommonDependencies:
    """Factory for common dependencies."""
    if _common_deps is None:
        raise HTTPException(status_code=503, detail="Services are not initialized")
    return _common_deps


async def create_common_deps(db_path: Optional[str] = None) -> CommonDependencies:
    """Connect the database and build every shared service."""
    db = Database(db_path)
    await db.connect()

    settings = Settings().use_database(db)
    await settings.init_defaults()

    credentials = ApiKeyStore(settings, session_key=config.api_key)
    client = RemoteClient(credentials=credentials)
    return CommonDependencies(
        db=db,
        settings=settings,
        credentials=credentials,
        client=client,
        reference=ReferenceCache(client),
        sync=TransactionSync(db, client, settings),
    )


async def close_common_deps(deps: CommonDependencies) -> None:
    await deps.client.aclose()
    await deps.db.close()


@contextmanager
def http_errors() -> Iterator[None]:
    """Translate domain errors raised inside a route into HTTP errors."""
    try:
        yield
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except (RemoteError, ProtocolError) as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    except CacheTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e)) from e
    except StorageError as e:
        logger.error(f"Storage failure: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e
