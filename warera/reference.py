"""
ReferenceCache - Session cache for regions, countries and item prices.

Usage:
    reference = ReferenceCache(client)
    await reference.ensure_ready(timeout=5.0)
    score = reference.region_score(region_id, 'iron')
    price = await reference.item_price('steel')
    reference.clear()  # e.g. when the target user changes

Regions and countries are loaded once, in one bulk load shared by every
concurrent caller. Item prices are fetched on first use and kept until clear().
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from warera import queries
from warera.client import RemoteClient
from warera.errors import CacheTimeoutError, ValidationError
from warera.utils.dates import parse_timestamp, utc_now
from warera.utils.numbers import to_number

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


class CacheState(Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class Region:
    id: str
    name: str
    country_id: Optional[str]
    deposit_item: Optional[str]
    deposit_ends_at: Optional[datetime]
    bonus: float  # Deposit production bonus as a fraction (0.3 = +30%)

    def deposit_delay(self, now: Optional[datetime] = None) -> tuple[int, str]:
        """Time left on the deposit as (seconds, "2d 3h 20min")."""
        if self.deposit_ends_at is None:
            return 0, "0s"
        remaining = int(max((self.deposit_ends_at - (now or utc_now())).total_seconds(), 0))
        return remaining, format_delay(remaining)


@dataclass(frozen=True)
class Country:
    id: str
    name: str
    bonus: float  # Strategic-resource production bonus as a fraction
    specialized_item: Optional[str]


@dataclass(frozen=True)
class RegionScore:
    score: float
    has_bonus: bool  # True only when the region's own deposit matched


@dataclass(frozen=True)
class RankedRegion:
    region_id: str
    score: float
    has_bonus: bool


def format_delay(seconds: int) -> str:
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}min")
    return " ".join(parts) or "0s"


def region_from_api(raw: dict) -> Region:
    deposit = raw.get("deposit") or {}
    ends_at = None
    if deposit.get("endsAt"):
        try:
            ends_at = parse_timestamp(deposit["endsAt"])
        except ValidationError:
            logger.debug(f"Region {raw.get('_id')}: unreadable deposit end {deposit['endsAt']!r}")
    return Region(
        id=str(raw.get("_id")),
        name=raw.get("name") or "",
        country_id=raw.get("country"),
        deposit_item=deposit.get("type"),
        deposit_ends_at=ends_at,
        bonus=to_number(deposit.get("bonusPercent")) / 100,
    )


def country_from_api(raw: dict) -> Country:
    bonuses = ((raw.get("strategicResources") or {}).get("bonuses")) or {}
    return Country(
        id=str(raw.get("_id")),
        name=raw.get("name") or "",
        bonus=to_number(bonuses.get("productionPercent")) / 100,
        specialized_item=raw.get("specializedItem"),
    )


class ReferenceCache:
    """Regions, countries and item prices for the current session."""

    def __init__(self, client: RemoteClient):
        self._client = client
        self._regions: dict[str, Region] = {}
        self._countries: dict[str, Country] = {}
        self._prices: dict[str, float] = {}
        self._price_flights: dict[str, asyncio.Task] = {}
        self._state = CacheState.EMPTY
        self._flight: Optional[asyncio.Task] = None
        # Bumped by clear(); loads started under an older generation are discarded
        self._generation = 0
        self._loads = 0

    # -------------------------------------------------------------------------
    # Regions & countries
    # -------------------------------------------------------------------------

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is CacheState.READY

    def get_region(self, region_id: str) -> Optional[Region]:
        return self._regions.get(region_id)

    def get_country(self, country_id: str) -> Optional[Country]:
        return self._countries.get(country_id)

    def regions(self) -> list[Region]:
        return list(self._regions.values())

    def countries(self) -> list[Country]:
        return list(self._countries.values())

    async def ensure_ready(self, timeout: Optional[float] = DEFAULT_TIMEOUT) -> bool:
        """
        Load regions and countries unless already loaded.

        Concurrent callers share a single in-flight load. The timeout only
        bounds this caller's wait: on expiry the load keeps running and
        later callers can still pick up its result.

        Args:
            timeout: Seconds to wait; None or <= 0 waits until the load finishes

        Raises:
            CacheTimeoutError: If the load did not finish in time
            RemoteError: If the load failed (the cache is reset and can be retried)
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout and timeout > 0 else None

        while self._state is not CacheState.READY:
            flight = self._start_load()
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                raise CacheTimeoutError(f"Reference data not ready after {timeout}s")
            try:
                await asyncio.wait_for(asyncio.shield(flight), remaining)
            except asyncio.TimeoutError as e:
                raise CacheTimeoutError(f"Reference data not ready after {timeout}s") from e

        return True

    def _start_load(self) -> asyncio.Task:
        if self._flight is None:
            self._state = CacheState.LOADING
            self._flight = asyncio.create_task(self._load(self._generation))
            self._flight.add_done_callback(_retrieve_exception)
        return self._flight

    async def _load(self, generation: int) -> None:
        try:
            raw_regions = await queries.get_regions(self._client)
            raw_countries = await queries.get_countries(self._client)
        except Exception:
            if generation == self._generation:
                self._state = CacheState.EMPTY
                self._flight = None
            raise

        if generation != self._generation:
            logger.debug("Discarding reference data loaded before clear()")
            return

        self._regions = {region.id: region for region in map(region_from_api, raw_regions)}
        self._countries = {country.id: country for country in map(country_from_api, raw_countries)}
        self._state = CacheState.READY
        self._flight = None
        self._loads += 1
        logger.info(f"Reference cache loaded: {len(self._regions)} regions, {len(self._countries)} countries")

    def region_score(self, region_id: str, item_code: str) -> RegionScore:
        """
        Production bonus of a region for an item.

        The region's deposit bonus applies when its deposit produces the item,
        the country's bonus when the country specializes in it. Only the
        region-level match sets has_bonus. Unknown regions score 0.
        """
        region = self._regions.get(region_id)
        if region is None:
            return RegionScore(score=0.0, has_bonus=False)

        score = 0.0
        has_bonus = False
        if region.deposit_item is not None and region.deposit_item == item_code:
            score += region.bonus
            has_bonus = True

        country = self._countries.get(region.country_id) if region.country_id else None
        if country and country.specialized_item is not None and country.specialized_item == item_code:
            score += country.bonus

        return RegionScore(score=score, has_bonus=has_bonus)

    def ranked_regions(
        self,
        item_code: str,
        exclude: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[RankedRegion]:
        """All regions ordered by descending score for an item."""
        ranked = []
        for region_id in self._regions:
            if region_id == exclude:
                continue
            result = self.region_score(region_id, item_code)
            ranked.append(RankedRegion(region_id=region_id, score=result.score, has_bonus=result.has_bonus))
        ranked.sort(key=lambda r: r.score, reverse=True)
        return ranked[:limit] if limit is not None else ranked

    # -------------------------------------------------------------------------
    # Item prices
    # -------------------------------------------------------------------------

    async def item_price(self, item_code: str) -> float:
        """Best sell-order price for an item (0 when nobody sells it)."""
        if item_code in self._prices:
            return self._prices[item_code]

        flight = self._price_flights.get(item_code)
        if flight is None:
            flight = asyncio.create_task(self._fetch_price(item_code, self._generation))
            flight.add_done_callback(_retrieve_exception)
            self._price_flights[item_code] = flight
        return await asyncio.shield(flight)

    async def _fetch_price(self, item_code: str, generation: int) -> float:
        try:
            orders = await queries.get_top_orders(self._client, item_code, limit=2)
            sell_orders = orders.get("sellOrders")
            price = 0.0
            if isinstance(sell_orders, list) and sell_orders:
                price = to_number(sell_orders[0].get("price"))
            if generation == self._generation:
                self._prices[item_code] = price
            return price
        finally:
            if self._price_flights.get(item_code) is asyncio.current_task():
                del self._price_flights[item_code]

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def clear(self) -> None:
        """Drop all cached data; the next ensure_ready() loads again."""
        self._generation += 1
        self._regions = {}
        self._countries = {}
        self._prices = {}
        self._price_flights = {}
        self._flight = None
        self._state = CacheState.EMPTY
        logger.info("Reference cache cleared")

    def stats(self) -> dict:
        return {
            "state": self._state.value,
            "regions": len(self._regions),
            "countries": len(self._countries),
            "prices": len(self._prices),
            "loads": self._loads,
        }


def _retrieve_exception(task: asyncio.Task) -> None:
    # Failed loads nobody awaited (callers timed out) must not log "never retrieved"
    if not task.cancelled():
        task.exception()
