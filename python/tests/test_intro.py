"""
Tests for the introduction cache and its durable played flag.

Last Grunted: 10/18/2026
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from mock_interview.errors import VoiceChannelError
from mock_interview.intro import IntroductionCache, IntroFlagError, IntroFlagStore, intro_flag_key
from mock_interview.models import IntroPayload
from tests.mock_data import INTRO_TEXT, FakeIntroductionSource


class FakeChannel:
    """Stands in for the VoiceChannel methods the cache uses."""

    def __init__(self, reply: Optional[IntroPayload] = None) -> None:
        self.connected = asyncio.Event()
        self.connected.set()
        self.played: list[IntroPayload] = []
        self.requests: list[str] = []
        self.reply = reply

    async def wait_connected(self, timeout: Optional[float] = None) -> None:
        await self.connected.wait()

    async def request_introduction(self, question_context: str, timeout: float = 30.0) -> IntroPayload:
        self.requests.append(question_context)
        if self.reply is None:
            raise VoiceChannelError("Introduction not ready after 1s")
        return self.reply

    async def play_introduction(self, payload: IntroPayload) -> None:
        self.played.append(payload)


def make_cache(
    tmp_path: Path,
    source: Optional[FakeIntroductionSource],
    session_id: str = "iv_1",
) -> IntroductionCache:
    return IntroductionCache(
        session_id,
        source=source,
        flags=IntroFlagStore(tmp_path),
        play_delay_seconds=0.0,
        request_timeout_seconds=0.1,
    )


class TestIntroFlagStore:
    def test_set_is_durable_across_instances(self, tmp_path: Path):
        IntroFlagStore(tmp_path).set("iv_1")

        store = IntroFlagStore(tmp_path)
        assert store.is_set("iv_1")
        assert not store.is_set("iv_2")
        assert intro_flag_key("iv_1") in store.path.read_text(encoding="utf-8")

    def test_clear(self, tmp_path: Path):
        store = IntroFlagStore(tmp_path)
        store.set("iv_1")
        store.clear("iv_1")
        assert not store.is_set("iv_1")

    def test_corrupt_file_raises(self, tmp_path: Path):
        store = IntroFlagStore(tmp_path)
        store.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(IntroFlagError):
            store.is_set("iv_1")


class TestIntroductionCache:
    @pytest.mark.asyncio
    async def test_plays_once_and_sets_flag_before_playback(self, tmp_path: Path):
        source = FakeIntroductionSource()
        cache = make_cache(tmp_path, source)
        channel = FakeChannel()

        flag_at_playback: list[bool] = []

        async def play(payload: IntroPayload) -> None:
            flag_at_playback.append(cache.has_played())
            channel.played.append(payload)

        channel.play_introduction = play  # type: ignore[method-assign]

        assert await cache.play_when_ready(channel, "Two Sum") is True
        assert await cache.play_when_ready(channel, "Two Sum") is False

        assert [p.text for p in channel.played] == [INTRO_TEXT]
        assert flag_at_playback == [True]
        assert source.calls == ["Two Sum"]

    @pytest.mark.asyncio
    async def test_flag_survives_a_new_cache(self, tmp_path: Path):
        channel = FakeChannel()
        await make_cache(tmp_path, FakeIntroductionSource()).play_when_ready(channel, "Q")

        source = FakeIntroductionSource()
        cache = make_cache(tmp_path, source)

        assert await cache.play_when_ready(channel, "Q") is False
        assert await cache.prefetch("Q") is None
        assert source.calls == []
        assert len(channel.played) == 1

    @pytest.mark.asyncio
    async def test_failed_fetch_does_not_set_flag(self, tmp_path: Path):
        source = FakeIntroductionSource()
        source.fail = True
        cache = make_cache(tmp_path, source)
        channel = FakeChannel()

        assert await cache.play_when_ready(channel, "Q") is False
        assert not cache.has_played()
        assert channel.played == []

        source.fail = False
        assert await cache.play_when_ready(channel, "Q") is True
        assert cache.fetch_attempts == 2

    @pytest.mark.asyncio
    async def test_prefetch_caches_per_context(self, tmp_path: Path):
        source = FakeIntroductionSource()
        cache = make_cache(tmp_path, source)

        first = await cache.prefetch("Q1")
        again = await cache.prefetch("Q1")
        await cache.prefetch("Q2")

        assert first is again
        assert cache.cached("Q1") is first
        assert source.calls == ["Q1", "Q2"]

    @pytest.mark.asyncio
    async def test_waits_for_connection_before_playing(self, tmp_path: Path):
        cache = make_cache(tmp_path, FakeIntroductionSource())
        channel = FakeChannel()
        channel.connected.clear()

        task = asyncio.create_task(cache.play_when_ready(channel, "Q"))
        await asyncio.sleep(0.02)
        assert channel.played == []
        assert not cache.has_played()

        channel.connected.set()
        assert await task is True
        assert len(channel.played) == 1

    @pytest.mark.asyncio
    async def test_flag_set_while_waiting_prevents_playback(self, tmp_path: Path):
        cache = make_cache(tmp_path, FakeIntroductionSource())
        channel = FakeChannel()
        channel.connected.clear()

        task = asyncio.create_task(cache.play_when_ready(channel, "Q"))
        await asyncio.sleep(0.02)
        cache.mark_played()
        channel.connected.set()

        assert await task is False
        assert channel.played == []

    @pytest.mark.asyncio
    async def test_channel_generated_introduction(self, tmp_path: Path):
        cache = make_cache(tmp_path, None)
        channel = FakeChannel(reply=IntroPayload(text="Hello from the voice service", audio=None))

        assert await cache.play_when_ready(channel, "Q") is True

        assert channel.requests == ["Q"]
        assert channel.played[0].text == "Hello from the voice service"
        assert cache.cached("Q") is not None

    @pytest.mark.asyncio
    async def test_channel_introduction_timeout_leaves_flag_unset(self, tmp_path: Path):
        cache = make_cache(tmp_path, None)
        channel = FakeChannel(reply=None)

        assert await cache.play_when_ready(channel, "Q") is False
        assert not cache.has_played()

    def test_unreadable_flag_counts_as_played(self, tmp_path: Path):
        cache = make_cache(tmp_path, FakeIntroductionSource())
        (tmp_path / "intro_flags.json").write_text("[]", encoding="utf-8")
        assert cache.has_played() is True
