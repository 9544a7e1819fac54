"""Tests for the incremental transaction sync.

These tests verify the intended behavior of TransactionSync:
1. Paging until the feed is exhausted or the watermark is reached
2. Records at or before the watermark are never re-saved
3. Per-page commits survive later failures
4. Feed order and shape are verified
5. Only one run at a time
6. Progress reporting through status and subscriber queues
"""

import asyncio
from unittest.mock import patch

import pytest

from warera.errors import RemoteError, StorageError, SyncInProgressError, ValidationError
from warera.sync import (
    TRACKED_TYPES,
    SyncExit,
    SyncFinishedEvent,
    SyncProgressEvent,
    SyncResult,
    SyncState,
    TransactionSync,
)

USER = "64f0c0ffee"
PROCEDURE = "transaction.getPaginatedTransactions"


def ts(seconds: int) -> str:
    """Canonical timestamp ``seconds`` after 2024-01-01T00:00:00Z."""
    return f"2024-01-01T{seconds // 3600:02d}:{seconds // 60 % 60:02d}:{seconds % 60:02d}.000Z"


def item(seconds: int, **fields) -> dict:
    record = {
        "_id": f"tx-{seconds}",
        "createdAt": ts(seconds),
        "transactionType": "trading",
        "buyerId": USER,
        "sellerId": "other",
        "itemCode": "iron",
        "money": 10,
        "quantity": 1,
    }
    record.update(fields)
    return record


def feed(pages: dict, calls: list, gate=None):
    """Fake client.call serving ``pages`` keyed by cursor (None = first page)."""

    async def handler(procedure, params=None, api_key=None):
        assert procedure == PROCEDURE
        calls.append(dict(params))
        if gate is not None:
            await gate.wait()
        page = pages[params.get("cursor")]
        if isinstance(page, Exception):
            raise page
        return page

    return handler


class TestRunToCompletion:
    """Tests for normal runs."""

    @pytest.mark.asyncio
    async def test_empty_store_pages_until_exhausted(self, temp_db, mock_client):
        calls = []
        mock_client.call.side_effect = feed(
            {
                None: {"items": [item(300), item(200)], "nextCursor": "c2"},
                "c2": {"items": [item(100)], "nextCursor": None},
            },
            calls,
        )
        engine = TransactionSync(temp_db, mock_client)

        result = await engine.run(USER)

        assert result == SyncResult(new_count=3, total_in_db=3)
        assert len(calls) == 2
        assert engine.status.exit is SyncExit.EXHAUSTED
        assert engine.status.state is SyncState.COMPLETE
        assert await temp_db.get_most_recent_timestamp() == ts(300)

    @pytest.mark.asyncio
    async def test_request_parameters(self, temp_db, mock_client):
        calls = []
        mock_client.call.side_effect = feed(
            {
                None: {"items": [item(300)], "nextCursor": "c2"},
                "c2": {"items": [], "nextCursor": None},
            },
            calls,
        )
        await TransactionSync(temp_db, mock_client).run(USER)

        assert calls[0] == {"userId": USER, "transactionType": list(TRACKED_TYPES), "limit": 100, "cursor": None}
        assert calls[1]["cursor"] == "c2"

    @pytest.mark.asyncio
    async def test_empty_first_page(self, temp_db, mock_client):
        mock_client.call.side_effect = feed({None: {"items": [], "nextCursor": "ignored"}}, [])
        engine = TransactionSync(temp_db, mock_client)

        result = await engine.run(USER)

        assert result == SyncResult(new_count=0, total_in_db=0)
        assert engine.status.exit is SyncExit.EXHAUSTED

    @pytest.mark.asyncio
    async def test_stops_at_watermark(self, temp_db, mock_client):
        await temp_db.upsert_transactions([item(500)])
        calls = []
        mock_client.call.side_effect = feed(
            {
                None: {"items": [item(600), item(550), item(500), item(450)], "nextCursor": "more"},
                "more": RemoteError("must not be requested"),
            },
            calls,
        )
        engine = TransactionSync(temp_db, mock_client)

        result = await engine.run(USER)

        assert result == SyncResult(new_count=2, total_in_db=3)
        assert len(calls) == 1
        assert engine.status.exit is SyncExit.CAUGHT_UP
        assert await temp_db.get_transaction("tx-600") is not None
        assert await temp_db.get_transaction("tx-550") is not None
        assert await temp_db.get_transaction("tx-450") is None

    @pytest.mark.asyncio
    async def test_equal_timestamp_is_skipped(self, temp_db, mock_client):
        await temp_db.upsert_transactions([item(500)])
        mock_client.call.side_effect = feed(
            {None: {"items": [item(500, _id="same-ms-other-id")], "nextCursor": "more"}},
            [],
        )

        result = await TransactionSync(temp_db, mock_client).run(USER)

        assert result.new_count == 0
        assert await temp_db.get_transaction("same-ms-other-id") is None

    @pytest.mark.asyncio
    async def test_boundary_on_later_page(self, temp_db, mock_client):
        await temp_db.upsert_transactions([item(100)])
        calls = []
        mock_client.call.side_effect = feed(
            {
                None: {"items": [item(400), item(300)], "nextCursor": "c2"},
                "c2": {"items": [item(200), item(100)], "nextCursor": "c3"},
            },
            calls,
        )

        result = await TransactionSync(temp_db, mock_client).run(USER)

        assert result == SyncResult(new_count=3, total_in_db=4)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_rerun_is_noop_and_watermark_advances(self, temp_db, mock_client):
        await temp_db.upsert_transactions([item(100), item(200)])
        pages = {None: {"items": [item(400), item(300), item(200), item(100)], "nextCursor": None}}
        mock_client.call.side_effect = feed(pages, [])
        engine = TransactionSync(temp_db, mock_client)

        first = await engine.run(USER)
        assert first.new_count == 2
        assert await temp_db.get_most_recent_timestamp() == ts(400)

        second = await engine.run(USER)
        assert second == SyncResult(new_count=0, total_in_db=4)

    @pytest.mark.asyncio
    async def test_records_are_normalized(self, temp_db, mock_client):
        raw = item(300, money="12.5", quantity=None, createdAt="2024-01-01T02:05:00+02:00")
        mock_client.call.side_effect = feed({None: {"items": [raw], "nextCursor": None}}, [])

        await TransactionSync(temp_db, mock_client).run(USER)

        stored = await temp_db.get_transaction("tx-300")
        assert stored["money"] == 12.5
        assert stored["quantity"] == 0
        assert stored["createdAt"] == "2024-01-01T00:05:00.000Z"


class TestFailures:
    """Tests for errors inside a run."""

    @pytest.mark.asyncio
    async def test_remote_error_keeps_committed_pages(self, temp_db, mock_client):
        mock_client.call.side_effect = feed(
            {
                None: {"items": [item(300), item(200)], "nextCursor": "c2"},
                "c2": RemoteError("HTTP 502", status=502),
            },
            [],
        )
        engine = TransactionSync(temp_db, mock_client)

        result = await engine.run(USER)

        assert result.new_count == 2
        assert result.total_in_db == 2
        assert result.error == "HTTP 502"
        assert engine.status.exit is SyncExit.ERROR
        assert engine.status.error == "HTTP 502"
        assert result.to_dict() == {"new_count": 2, "total_in_db": 2, "error": "HTTP 502"}

    @pytest.mark.asyncio
    async def test_out_of_order_page_is_rejected(self, temp_db, mock_client):
        mock_client.call.side_effect = feed(
            {
                None: {"items": [item(500)], "nextCursor": "c2"},
                "c2": {"items": [item(300), item(400)], "nextCursor": None},
            },
            [],
        )

        result = await TransactionSync(temp_db, mock_client).run(USER)

        assert "newest-first" in result.error
        assert result.new_count == 1
        assert await temp_db.get_transaction("tx-300") is None

    @pytest.mark.asyncio
    async def test_missing_created_at_mid_page_is_saved(self, temp_db, mock_client):
        mock_client.call.side_effect = feed(
            {None: {"items": [item(600), item(550, createdAt=None), item(500)], "nextCursor": None}},
            [],
        )

        result = await TransactionSync(temp_db, mock_client).run(USER)

        assert result == SyncResult(new_count=3, total_in_db=3)
        stored = await temp_db.get_transaction("tx-550")
        assert stored["createdAt"] > ts(600)

    @pytest.mark.asyncio
    async def test_missing_created_at_does_not_end_run(self, temp_db, mock_client):
        await temp_db.upsert_transactions([item(400)])
        mock_client.call.side_effect = feed(
            {None: {"items": [item(600), item(550, createdAt=""), item(400), item(300)], "nextCursor": "c2"}},
            [],
        )
        engine = TransactionSync(temp_db, mock_client)

        result = await engine.run(USER)

        assert result == SyncResult(new_count=2, total_in_db=3)
        assert engine.status.exit is SyncExit.CAUGHT_UP
        assert await temp_db.get_transaction("tx-300") is None

    @pytest.mark.asyncio
    async def test_page_without_items(self, temp_db, mock_client):
        mock_client.call.side_effect = feed({None: {"transactions": []}}, [])

        result = await TransactionSync(temp_db, mock_client).run(USER)

        assert result.new_count == 0
        assert "items" in result.error

    @pytest.mark.asyncio
    async def test_storage_error(self, temp_db, mock_client):
        mock_client.call.side_effect = feed({None: {"items": [item(300)], "nextCursor": None}}, [])
        engine = TransactionSync(temp_db, mock_client)

        with patch.object(temp_db, "upsert_transactions", side_effect=StorageError("disk full")):
            result = await engine.run(USER)

        assert result == SyncResult(new_count=0, total_in_db=0, error="disk full")

    @pytest.mark.asyncio
    async def test_invalid_record_fails_page(self, temp_db, mock_client):
        mock_client.call.side_effect = feed({None: {"items": [item(300, createdAt="garbage")], "nextCursor": None}}, [])

        result = await TransactionSync(temp_db, mock_client).run(USER)

        assert result.error is not None
        assert await temp_db.count_transactions() == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", ["", "   ", None])
    async def test_user_id_required(self, temp_db, mock_client, user_id):
        engine = TransactionSync(temp_db, mock_client)

        with pytest.raises(ValidationError):
            await engine.run(user_id)
        mock_client.call.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_run_rejected(self, temp_db, mock_client):
        calls = []
        gate = asyncio.Event()
        mock_client.call.side_effect = feed({None: {"items": [item(100)], "nextCursor": None}}, calls, gate=gate)
        engine = TransactionSync(temp_db, mock_client)

        first = asyncio.create_task(engine.run(USER))
        while not engine.running:
            await asyncio.sleep(0)

        with pytest.raises(SyncInProgressError):
            await engine.run(USER)

        gate.set()
        result = await first
        assert result.new_count == 1
        assert len(calls) == 1
        assert not engine.running


class TestProgress:
    """Tests for status and subscriber events."""

    @pytest.mark.asyncio
    async def test_events_per_page_then_finished(self, temp_db, mock_client):
        mock_client.call.side_effect = feed(
            {
                None: {"items": [item(300), item(200)], "nextCursor": "c2"},
                "c2": {"items": [item(100)], "nextCursor": None},
            },
            [],
        )
        engine = TransactionSync(temp_db, mock_client)
        queue = engine.subscribe()

        await engine.run(USER)

        events = []
        while not queue.empty():
            events.append(queue.get_nowait())

        assert [type(e) for e in events] == [SyncProgressEvent, SyncProgressEvent, SyncFinishedEvent]
        assert [e.synced for e in events[:2]] == [2, 3]
        assert events[-1].exit is SyncExit.EXHAUSTED
        assert events[-1].result.new_count == 3
        assert events[0].type() == "SYNC_PROGRESS"

    @pytest.mark.asyncio
    async def test_unsubscribe(self, temp_db, mock_client):
        mock_client.call.side_effect = feed({None: {"items": [], "nextCursor": None}}, [])
        engine = TransactionSync(temp_db, mock_client)
        queue = engine.subscribe()
        engine.unsubscribe(queue)

        await engine.run(USER)

        assert queue.empty()

    @pytest.mark.asyncio
    async def test_status_snapshot(self, temp_db, mock_client):
        await temp_db.upsert_transactions([item(100)])
        mock_client.call.side_effect = feed({None: {"items": [item(200), item(100)], "nextCursor": "x"}}, [])
        engine = TransactionSync(temp_db, mock_client)
        assert engine.status.state is SyncState.IDLE

        await engine.run(USER)

        status = engine.status.to_dict()
        assert status["state"] == "complete"
        assert status["exit"] == "caught_up"
        assert status["synced"] == 1
        assert status["pages"] == 1
        assert status["watermark"] == ts(100)
        assert status["user_id"] == USER
        assert status["running"] is False
        assert status["finished_at"].endswith("Z")


class TestSettingsIntegration:
    """Tests for settings-driven behavior."""

    @pytest.mark.asyncio
    async def test_page_size_from_settings(self, temp_db, temp_settings, mock_client):
        await temp_settings.set("sync_page_size", 25)
        calls = []
        mock_client.call.side_effect = feed({None: {"items": [], "nextCursor": None}}, calls)

        await TransactionSync(temp_db, mock_client, temp_settings).run(USER)

        assert calls[0]["limit"] == 25

    @pytest.mark.asyncio
    async def test_page_size_capped(self, temp_db, temp_settings, mock_client):
        await temp_settings.set("sync_page_size", 1000)
        calls = []
        mock_client.call.side_effect = feed({None: {"items": [], "nextCursor": None}}, calls)

        await TransactionSync(temp_db, mock_client, temp_settings).run(USER)

        assert calls[0]["limit"] == 100

    @pytest.mark.asyncio
    async def test_last_sync_recorded_on_success_only(self, temp_db, temp_settings, mock_client):
        mock_client.call.side_effect = feed({None: RemoteError("down")}, [])
        engine = TransactionSync(temp_db, mock_client, temp_settings)

        await engine.run(USER)
        assert await temp_settings.get("last_sync_at") is None

        mock_client.call.side_effect = feed({None: {"items": [], "nextCursor": None}}, [])
        await engine.run(USER)
        assert (await temp_settings.get("last_sync_at")).endswith("Z")
