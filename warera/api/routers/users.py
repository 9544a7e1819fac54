"""User profile API routes."""

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends
from typing_extensions import Annotated

from warera import queries
from warera.api.dependencies import CommonDependencies, get_common_deps, http_errors

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}/profile")
async def get_profile(
    user_id: str,
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> dict[str, Any]:
    """
    Production profile of a user.

    When the lookup fails the default profile is returned with
    ``fallback: true`` and the error message.
    """
    with http_errors():
        fetched = await queries.fetch_user_profile(deps.client, user_id)

    profile = fetched.value_or(queries.fallback_profile(user_id.strip()))
    return {
        "profile": asdict(profile),
        "fallback": not fetched.ok,
        "error": fetched.error.message if fetched.error else None,
    }
