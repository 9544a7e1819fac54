"""
WarEra Web API - FastAPI entry point.

Usage:
    uvicorn warera.app:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from warera.api.dependencies import close_common_deps, create_common_deps, set_common_deps
from warera.api.routers import (
    analysis_router,
    database_router,
    reference_router,
    settings_router,
    sync_router,
    users_router,
)
from warera.version import VERSION

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services on startup, cleanup on shutdown."""
    # Startup
    deps = await create_common_deps()
    set_common_deps(deps)
    overview = await deps.db.get_stats()
    logger.info(f"Database ready: {overview['total_transactions']} transactions stored")

    yield

    # Shutdown
    set_common_deps(None)
    await close_common_deps(deps)


app = FastAPI(
    title="WarEra Ledger",
    description="Transaction history and trading analytics for WarEra",
    version=VERSION,
    lifespan=lifespan,
)

# CORS for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(settings_router, prefix="/api")
app.include_router(database_router, prefix="/api")
app.include_router(sync_router, prefix="/api")
app.include_router(analysis_router, prefix="/api")
app.include_router(reference_router, prefix="/api")
app.include_router(users_router, prefix="/api")
