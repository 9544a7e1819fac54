"""Transaction sync API routes."""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing_extensions import Annotated

from warera.api.dependencies import CommonDependencies, get_common_deps, http_errors

router = APIRouter(prefix="/sync", tags=["sync"])


class SyncRequest(BaseModel):
    user_id: Optional[str] = None  # Defaults to the target user


@router.post("/run")
async def run_sync(
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
    request: Optional[SyncRequest] = None,
) -> dict[str, Any]:
    """
    Sync new transactions and wait for the run to finish.

    Remote and storage failures are reported in the ``error`` field of a 200
    response; committed pages are kept.
    """
    user_id = request.user_id if request and request.user_id else await deps.settings.get("target_user_id")
    with http_errors():
        result = await deps.sync.run(user_id)
    return result.to_dict()


@router.get("/status")
async def get_status(
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> dict[str, Any]:
    """Progress of the current run, or the outcome of the last one."""
    status = deps.sync.status.to_dict()
    status["last_sync_at"] = await deps.settings.get("last_sync_at")
    return status
