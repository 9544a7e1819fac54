"""Period analysis API routes."""

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from typing_extensions import Annotated

from warera.analysis import analyze_period
from warera.api.dependencies import CommonDependencies, get_common_deps, http_errors
from warera.utils.dates import resolve_period

router = APIRouter(prefix="/analysis", tags=["analysis"])


@router.get("")
async def get_analysis(
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
    start: Optional[date] = None,
    end: Optional[date] = None,
    days: Optional[str] = None,
    user_id: Optional[str] = None,
    daily: bool = True,
) -> dict[str, Any]:
    """
    Buy/sell rollup for a period.

    Pass either start and end, or days (a number of days back from today or
    "all" for the full stored history). Without either the last 30 days are
    used. user_id defaults to the target user.
    """
    with http_errors():
        if start is None or end is None:
            if start is not None or end is not None:
                raise HTTPException(status_code=400, detail="start and end must be given together")
            oldest = await deps.db.get_oldest_timestamp() if days else None
            start, end = resolve_period(days or 30, oldest=oldest)
        if start > end:
            raise HTTPException(status_code=400, detail="start must not be after end")

        target = user_id or await deps.settings.get("target_user_id")
        result = await analyze_period(deps.db, start, end, target)

    data = result.to_dict()
    if not daily:
        data.pop("daily")
    return data
