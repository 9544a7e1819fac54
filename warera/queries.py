"""Typed wrappers around the remote procedures the application uses."""

import logging
from dataclasses import dataclass
from typing import Any, Generic, Optional, Sequence, TypeVar

from warera.client import RemoteClient
from warera.errors import RemoteError, ValidationError
from warera.utils.numbers import to_number

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Production points per session assumed when a profile cannot be fetched
DEFAULT_PRODUCTION = 12


@dataclass(frozen=True)
class Fetched(Generic[T]):
    """Outcome of a lookup: either a value or the error that prevented it.

    Callers decide on fallbacks explicitly, so "fetched and is 12" stays
    distinguishable from "fetch failed, defaulted to 12".
    """

    value: Optional[T] = None
    error: Optional[RemoteError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def value_or(self, default: T) -> T:
        return self.value if self.ok else default


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    name: str
    production: float
    estimated_work_per_day: float
    country_id: Optional[str] = None


def require_user_id(user_id: Optional[str]) -> str:
    """Strip and validate a user id."""
    cleaned = str(user_id).strip() if user_id is not None else ""
    if not cleaned:
        raise ValidationError("User id is required")
    return cleaned


def short_id(user_id: str) -> str:
    return user_id[:8] + "..."


async def get_user_lite(client: RemoteClient, user_id: str) -> dict:
    """Fetch a user's public profile; raises ValidationError if it has no username."""
    user_id = require_user_id(user_id)
    user = await client.call("user.getUserLite", {"userId": user_id})
    if not isinstance(user, dict) or not user.get("username"):
        raise ValidationError(f"User {user_id} not found")
    return user


def profile_from_user(user_id: str, user: dict) -> UserProfile:
    skills = user.get("skills") or {}
    production = to_number((skills.get("production") or {}).get("value")) or DEFAULT_PRODUCTION
    hourly_regen = to_number((skills.get("energy") or {}).get("hourlyBarRegen"))
    return UserProfile(
        user_id=user_id,
        name=user.get("username") or short_id(user_id),
        production=production,
        estimated_work_per_day=hourly_regen * 24 / 10,
        country_id=user.get("country"),
    )


async def fetch_user_profile(client: RemoteClient, user_id: str) -> Fetched[UserProfile]:
    """Fetch a user's production profile without raising on remote failures."""
    user_id = require_user_id(user_id)
    try:
        user = await client.call("user.getUserLite", {"userId": user_id})
    except RemoteError as e:
        logger.warning(f"Profile lookup for {user_id} failed: {e}")
        return Fetched(error=e)
    if not isinstance(user, dict):
        return Fetched(error=RemoteError(f"Unexpected profile payload for {user_id}"))
    return Fetched(value=profile_from_user(user_id, user))


def fallback_profile(user_id: str) -> UserProfile:
    """Profile used when a lookup failed."""
    return UserProfile(
        user_id=user_id,
        name=short_id(user_id),
        production=DEFAULT_PRODUCTION,
        estimated_work_per_day=0,
    )


async def get_regions(client: RemoteClient) -> list[dict]:
    """All regions (the API returns an object keyed by region id)."""
    data = await client.call("region.getRegionsObject", {})
    if isinstance(data, dict):
        return list(data.values())
    if isinstance(data, list):
        return data
    return []


async def get_countries(client: RemoteClient) -> list[dict]:
    data = await client.call("country.getAllCountries", {})
    return data if isinstance(data, list) else []


async def get_top_orders(client: RemoteClient, item_code: str, limit: int = 2) -> dict:
    data = await client.call("tradingOrder.getTopOrders", {"itemCode": item_code, "limit": limit})
    return data if isinstance(data, dict) else {}


async def get_paginated_transactions(
    client: RemoteClient,
    user_id: str,
    transaction_types: Sequence[str],
    limit: int,
    cursor: Optional[Any] = None,
) -> Any:
    """One page of a user's transaction feed (newest first)."""
    return await client.call(
        "transaction.getPaginatedTransactions",
        {
            "userId": user_id,
            "transactionType": list(transaction_types),
            "limit": limit,
            "cursor": cursor,
        },
    )
