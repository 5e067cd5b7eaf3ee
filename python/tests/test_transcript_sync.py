"""
Tests for ordered transcript delivery.

Last Grunted: 10/18/2026
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from mock_interview.errors import RpcError
from mock_interview.models import Speaker, TranscriptEntry
from mock_interview.transcript_sync import TranscriptSync
from tests.mock_data import wait_for


class RecordingStore:
    """Persists transcript entries with per-entry latency and failures."""

    def __init__(self) -> None:
        self.stored: list[str] = []
        self.attempts: list[str] = []
        self.delays: dict[str, float] = {}
        self.failures: dict[str, int] = {}
        self.gate: Optional[asyncio.Event] = None

    async def persist(self, partial: dict[str, Any]) -> None:
        text = partial["transcript_entry"]["text"]
        self.attempts.append(text)
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(self.delays.get(text, 0.0))
        if self.failures.get(text, 0) > 0:
            self.failures[text] -= 1
            raise RpcError("Failed to update interview", status_code=500)
        self.stored.append(text)


def entry(text: str) -> TranscriptEntry:
    return TranscriptEntry(speaker=Speaker.USER, text=text)


def make_sync(store: RecordingStore, session_id: str = "iv_1") -> TranscriptSync:
    return TranscriptSync(session_id, persist=store.persist, retry_delay_seconds=0.01)


class TestTranscriptSync:
    @pytest.mark.asyncio
    async def test_entries_are_written_in_append_order(self):
        store = RecordingStore()
        store.delays = {"first": 0.05}
        sync = make_sync(store)
        sync.start()

        for text in ("first", "second", "third"):
            sync.enqueue(entry(text))

        await wait_for(lambda: len(store.stored) == 3)
        await sync.stop()
        assert store.stored == ["first", "second", "third"]
        assert sync.synced_count == 3

    @pytest.mark.asyncio
    async def test_failed_write_is_retried_before_later_entries(self):
        store = RecordingStore()
        store.failures = {"first": 2}
        sync = make_sync(store)
        sync.start()

        sync.enqueue(entry("first"))
        sync.enqueue(entry("second"))

        await wait_for(lambda: len(store.stored) == 2)
        await sync.stop()
        assert store.stored == ["first", "second"]
        assert store.attempts[:3] == ["first", "first", "first"]
        assert sync.last_error is None

    @pytest.mark.asyncio
    async def test_flush_raises_and_keeps_the_failed_entry(self):
        store = RecordingStore()
        store.failures = {"second": 1}
        sync = make_sync(store)
        for text in ("first", "second", "third"):
            sync.enqueue(entry(text))

        with pytest.raises(RpcError):
            await sync.flush()
        assert store.stored == ["first"]
        assert [e.text for e in sync.pending] == ["second", "third"]

        await sync.flush()
        assert store.stored == ["first", "second", "third"]
        assert sync.pending == []

    @pytest.mark.asyncio
    async def test_stop_waits_for_the_write_in_progress(self):
        store = RecordingStore()
        store.gate = asyncio.Event()
        sync = make_sync(store)
        sync.start()
        sync.enqueue(entry("first"))
        await wait_for(lambda: store.attempts == ["first"])

        stopping = asyncio.create_task(sync.stop())
        await asyncio.sleep(0.02)
        assert not stopping.done()

        store.gate.set()
        await stopping
        assert store.stored == ["first"]
        assert sync.pending == []
        assert not sync.is_running

    @pytest.mark.asyncio
    async def test_ephemeral_session_queues_nothing(self):
        store = RecordingStore()
        sync = make_sync(store, session_id="local-7")
        sync.start()
        sync.enqueue(entry("hello"))

        assert not sync.is_running
        assert sync.pending == []
        await sync.flush()
        assert store.attempts == []
