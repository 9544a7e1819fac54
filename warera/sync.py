"""
TransactionSync - Incremental download of a user's transaction history.

Usage:
    engine = TransactionSync(db, client, settings)
    result = await engine.run(user_id)
    if result.error:
        ...

The feed is paged newest-first. A run captures the newest stored timestamp
(the watermark) once, then walks pages until it reaches a record at or before
the watermark, the feed is exhausted, or an error ends the run. Each page is
committed before the next one is requested, so an interrupted run keeps what
it already saved and the next run resumes from the advanced watermark.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

from warera import queries
from warera.client import RemoteClient
from warera.database import Database, normalize_transaction
from warera.errors import ProtocolError, SyncInProgressError
from warera.utils.dates import format_iso_utc, normalize_timestamp, utc_now

if TYPE_CHECKING:
    from warera.settings import Settings

logger = logging.getLogger(__name__)

TRACKED_TYPES = ("wage", "itemMarket", "trading", "donation", "applicationFee")

# Server-side maximum for transaction.getPaginatedTransactions
MAX_PAGE_SIZE = 100


class SyncState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SAVING = "saving"
    COMPLETE = "complete"


class SyncExit(Enum):
    EXHAUSTED = "exhausted"  # Empty page or no next cursor
    CAUGHT_UP = "caught_up"  # Reached a record at or before the watermark
    ERROR = "error"


@dataclass
class SyncResult:
    new_count: int
    total_in_db: int
    error: Optional[str] = None

    def to_dict(self) -> dict:
        result = {"new_count": self.new_count, "total_in_db": self.total_in_db}
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class SyncStatus:
    """Pollable view of the current (or last) run."""

    state: SyncState = SyncState.IDLE
    user_id: Optional[str] = None
    synced: int = 0
    pages: int = 0
    watermark: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    exit: Optional[SyncExit] = None
    error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self.state in (SyncState.FETCHING, SyncState.SAVING)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value
        data["exit"] = self.exit.value if self.exit else None
        data["started_at"] = format_iso_utc(self.started_at) if self.started_at else None
        data["finished_at"] = format_iso_utc(self.finished_at) if self.finished_at else None
        data["running"] = self.running
        return data


@dataclass
class SyncProgressEvent:
    """Emitted after each committed page."""

    user_id: str
    synced: int
    pages: int
    occurred_at: datetime = field(default_factory=utc_now)

    def type(self) -> str:
        return "SYNC_PROGRESS"


@dataclass
class SyncFinishedEvent:
    """Emitted once per run, after the final state is recorded."""

    user_id: str
    exit: SyncExit
    result: SyncResult
    occurred_at: datetime = field(default_factory=utc_now)

    def type(self) -> str:
        return "SYNC_FINISHED"


SyncEvent = Union[SyncProgressEvent, SyncFinishedEvent]


def _page_items(page: Any) -> tuple[list, Any]:
    """Split a feed page into (items, next_cursor)."""
    if not isinstance(page, dict) or not isinstance(page.get("items"), list):
        raise ProtocolError(f"Transaction page has no items list: {type(page).__name__}")
    return page["items"], page.get("nextCursor")


def _feed_timestamp(item: dict) -> Optional[str]:
    """Canonical createdAt as sent by the server, or None when it is missing."""
    raw = item.get("createdAt")
    if raw is None or raw == "":
        return None
    return normalize_timestamp(raw)


def _check_newest_first(stamps: list[Optional[str]]) -> None:
    """Raise ProtocolError unless the known timestamps are non-increasing."""
    known = [stamp for stamp in stamps if stamp is not None]
    for previous, current in zip(known, known[1:]):
        if current > previous:
            raise ProtocolError(f"Transaction feed is not newest-first: {current} follows {previous}")


class TransactionSync:
    """Pulls new transactions for a user into the local store."""

    def __init__(
        self,
        db: Database,
        client: RemoteClient,
        settings: Optional["Settings"] = None,
        page_size: int = MAX_PAGE_SIZE,
    ):
        """
        Args:
            db: Connected database
            client: Remote client
            settings: Source of sync_page_size and sink for last_sync_at (optional)
            page_size: Page size used when settings don't override it
        """
        self._db = db
        self._client = client
        self._settings = settings
        self.page_size = page_size
        self._lock = asyncio.Lock()
        self._subscribers: list[asyncio.Queue] = []
        self.status = SyncStatus()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def subscribe(self) -> asyncio.Queue:
        """Queue that receives SyncProgressEvent and SyncFinishedEvent."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def _emit(self, event: SyncEvent) -> None:
        for queue in self._subscribers:
            queue.put_nowait(event)

    async def _resolve_page_size(self) -> int:
        size = self.page_size
        if self._settings is not None:
            size = await self._settings.get("sync_page_size", size)
        try:
            size = int(size)
        except (TypeError, ValueError):
            size = self.page_size
        return min(max(size, 1), MAX_PAGE_SIZE)

    async def run(self, user_id: str) -> SyncResult:
        """
        Sync new transactions for a user.

        Never raises for remote or storage failures: the returned result
        carries an error message instead, and pages committed before the
        failure stay in the store.

        Raises:
            ValidationError: If user_id is empty
            SyncInProgressError: If another run is in flight
        """
        user_id = queries.require_user_id(user_id)
        if self._lock.locked():
            raise SyncInProgressError(f"A sync for {self.status.user_id} is already running")

        async with self._lock:
            self.status = SyncStatus(state=SyncState.FETCHING, user_id=user_id, started_at=utc_now())
            new_count = 0
            try:
                exit_reason = await self._sync_pages(user_id)
                new_count = self.status.synced
                total = await self._db.count_transactions()
                result = SyncResult(new_count=new_count, total_in_db=total)
                if self._settings is not None:
                    await self._settings.set("last_sync_at", format_iso_utc(utc_now()))
            except Exception as e:
                logger.error(f"Sync for {user_id} failed after {self.status.synced} transactions: {e}")
                exit_reason = SyncExit.ERROR
                stats = await self._db.get_stats()
                result = SyncResult(
                    new_count=self.status.synced,
                    total_in_db=stats["total_transactions"],
                    error=str(e) or type(e).__name__,
                )

            self.status.state = SyncState.COMPLETE
            self.status.exit = exit_reason
            self.status.error = result.error
            self.status.finished_at = utc_now()
            logger.info(
                f"Sync for {user_id} finished ({exit_reason.value}): "
                f"{result.new_count} new, {result.total_in_db} stored"
            )
            self._emit(SyncFinishedEvent(user_id=user_id, exit=exit_reason, result=result))
            return result

    async def _sync_pages(self, user_id: str) -> SyncExit:
        watermark = await self._db.get_most_recent_timestamp()
        page_size = await self._resolve_page_size()
        self.status.watermark = watermark
        logger.info(f"Sync for {user_id} started (watermark: {watermark or 'none'})")

        cursor = None
        while True:
            self.status.state = SyncState.FETCHING
            page = await queries.get_paginated_transactions(self._client, user_id, TRACKED_TYPES, page_size, cursor)
            items, cursor = _page_items(page)
            if not items:
                return SyncExit.EXHAUSTED

            now = utc_now()
            records = [normalize_transaction(item, now=now) for item in items]
            # Records without createdAt get the ingestion time; they take no
            # part in the order check and never end the run.
            stamps = [_feed_timestamp(item) for item in items]
            _check_newest_first(stamps)

            buffer = []
            caught_up = False
            for record, stamp in zip(records, stamps):
                if watermark is not None and stamp is not None and stamp <= watermark:
                    caught_up = True
                    break
                buffer.append(record)

            if buffer:
                self.status.state = SyncState.SAVING
                await self._db.upsert_transactions(buffer)
                self.status.synced += len(buffer)
            self.status.pages += 1
            logger.debug(f"Sync page {self.status.pages}: saved {len(buffer)} of {len(records)}")
            self._emit(SyncProgressEvent(user_id=user_id, synced=self.status.synced, pages=self.status.pages))

            if caught_up:
                return SyncExit.CAUGHT_UP
            if not cursor:
                return SyncExit.EXHAUSTED
