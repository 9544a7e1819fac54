"""API routers for WarEra.

Each router handles a specific domain of the API.
"""

from warera.api.routers.analysis import router as analysis_router
from warera.api.routers.database import router as database_router
from warera.api.routers.reference import router as reference_router
from warera.api.routers.settings import router as settings_router
from warera.api.routers.sync import router as sync_router
from warera.api.routers.users import router as users_router

__all__ = [
    "analysis_router",
    "database_router",
    "reference_router",
    "settings_router",
    "sync_router",
    "users_router",
]
