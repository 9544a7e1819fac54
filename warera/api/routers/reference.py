"""Reference data API routes: region scores and item prices."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from typing_extensions import Annotated

from warera.api.dependencies import CommonDependencies, get_common_deps, http_errors
from warera.config import config

router = APIRouter(prefix="/reference", tags=["reference"])


async def _ready(deps: CommonDependencies) -> None:
    with http_errors():
        await deps.reference.ensure_ready(timeout=config.cache_timeout_seconds)


@router.get("/stats")
async def get_stats(
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> dict[str, Any]:
    return deps.reference.stats()


@router.post("/clear")
async def clear_cache(
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> dict[str, Any]:
    deps.reference.clear()
    return deps.reference.stats()


@router.get("/regions/{region_id}")
async def get_region(
    region_id: str,
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> dict[str, Any]:
    """Region details, including time left on its deposit."""
    await _ready(deps)
    region = deps.reference.get_region(region_id)
    if region is None:
        raise HTTPException(status_code=404, detail="Region not found")

    seconds, remaining = region.deposit_delay()
    country = deps.reference.get_country(region.country_id) if region.country_id else None
    return {
        "id": region.id,
        "name": region.name,
        "country_id": region.country_id,
        "country_name": country.name if country else None,
        "deposit_item": region.deposit_item,
        "deposit_bonus": region.bonus,
        "deposit_seconds_left": seconds,
        "deposit_time_left": remaining,
    }


@router.get("/regions/{region_id}/score")
async def get_region_score(
    region_id: str,
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
    item_code: str = Query(..., min_length=1),
) -> dict[str, Any]:
    """Production bonus of a region for an item (0 for unknown regions)."""
    await _ready(deps)
    result = deps.reference.region_score(region_id, item_code)
    return {"region_id": region_id, "item_code": item_code, "score": result.score, "has_bonus": result.has_bonus}


@router.get("/ranking")
async def get_ranking(
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
    item_code: str = Query(..., min_length=1),
    exclude: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
) -> list[dict[str, Any]]:
    """Regions ordered by production bonus for an item."""
    await _ready(deps)
    return [
        {"region_id": r.region_id, "score": r.score, "has_bonus": r.has_bonus}
        for r in deps.reference.ranked_regions(item_code, exclude=exclude, limit=limit)
    ]


@router.get("/items/{item_code}/price")
async def get_item_price(
    item_code: str,
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> dict[str, Any]:
    """Best sell-order price (0 when nothing is for sale)."""
    with http_errors():
        price = await deps.reference.item_price(item_code)
    return {"item_code": item_code, "price": price}
