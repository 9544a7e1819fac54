"""Settings API routes: target user and API key."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing_extensions import Annotated

from warera import queries
from warera.api.dependencies import CommonDependencies, get_common_deps, http_errors
from warera.credentials import API_KEY_SETTING, check_api_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


class TargetUserRequest(BaseModel):
    user_id: str


class ApiKeyRequest(BaseModel):
    api_key: str
    persistent: bool = False
    validate_key: bool = True


@router.get("")
async def get_settings(
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> dict[str, Any]:
    """Get all settings. The stored API key is never returned."""
    values = await deps.settings.all()
    values.pop(API_KEY_SETTING, None)
    values["api_key_scope"] = await deps.credentials.scope()
    return values


@router.put("/target-user")
async def set_target_user(
    request: TargetUserRequest,
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> dict[str, str]:
    """
    Switch the analysed user.

    The user must exist (have a username). Switching clears the reference
    cache, which is rebuilt on next use.
    """
    with http_errors():
        user_id = queries.require_user_id(request.user_id)
        user = await queries.get_user_lite(deps.client, user_id)

    await deps.settings.set("target_user_id", user_id)
    await deps.settings.set("target_user_name", user["username"])
    deps.reference.clear()
    logger.info(f"Target user set to {user['username']} ({user_id})")
    return {"user_id": user_id, "username": user["username"]}


@router.put("/api-key")
async def set_api_key(
    request: ApiKeyRequest,
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> dict[str, Any]:
    """Store an API key in the session or persistent scope."""
    api_key = request.api_key.strip()
    if not api_key:
        raise HTTPException(status_code=400, detail="API key is required")

    if request.validate_key:
        user_id = await deps.settings.get("target_user_id") or None
        if not await check_api_key(deps.client, api_key, user_id):
            raise HTTPException(status_code=400, detail="API key was rejected by the server")

    await deps.credentials.set(api_key, persistent=request.persistent)
    return {"scope": await deps.credentials.scope()}


@router.delete("/api-key")
async def delete_api_key(
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> dict[str, Any]:
    await deps.credentials.clear()
    return {"scope": None}
