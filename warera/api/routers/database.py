"""Local store API routes."""

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from typing_extensions import Annotated

from warera.api.dependencies import CommonDependencies, get_common_deps, http_errors

router = APIRouter(prefix="/database", tags=["database"])


@router.get("/overview")
async def get_overview(
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> dict[str, Any]:
    """Stored transaction count and newest timestamp."""
    overview = await deps.db.get_stats()
    overview["oldest"] = None
    if overview["total_transactions"]:
        with http_errors():
            overview["oldest"] = await deps.db.get_oldest_timestamp()
    return overview


@router.get("/transactions")
async def get_transactions(
    start: date,
    end: date,
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> list[dict]:
    """Stored transactions created between two calendar dates (inclusive, UTC)."""
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    with http_errors():
        return await deps.db.get_transactions_for_period(start, end)


@router.get("/transactions/{tx_id}")
async def get_transaction(
    tx_id: str,
    deps: Annotated[CommonDependencies, Depends(get_common_deps)],
) -> dict:
    with http_errors():
        tx = await deps.db.get_transaction(tx_id)
    if tx is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return tx
