"""Tests for the per-device local state cache."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from setlist.services.local_state import LocalStateCache


class TestPersistence:
    def test_values_survive_reload(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        cache = LocalStateCache(path)
        cache.lock_song("g", "s")
        cache.set_section_order("g", "Dance", ["b", "a"])
        cache.set_build_complete("g", "Dinner")
        cache.set_last_tenant("band-a")

        reopened = LocalStateCache(path)
        assert reopened.is_locked("g", "s")
        assert reopened.section_order("g") == {"Dance": ["b", "a"]}
        assert reopened.is_build_complete("g", "Dinner")
        assert reopened.state.last_tenant_id == "band-a"

    def test_corrupt_file_is_discarded(self, tmp_path, caplog: pytest.LogCaptureFixture) -> None:
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        with caplog.at_level(logging.WARNING):
            cache = LocalStateCache(path)
        assert cache.state.locked_songs == {}
        assert "Discarding" in caplog.text

    def test_no_path_keeps_state_in_memory(self) -> None:
        cache = LocalStateCache(None)
        cache.lock_song("g", "s")
        assert cache.is_locked("g", "s")


class TestSessionTimeout:
    def test_fresh_cache_is_not_expired(self, tmp_path) -> None:
        assert not LocalStateCache(tmp_path / "s.json").is_session_expired()

    def test_expires_after_timeout(self, tmp_path) -> None:
        cache = LocalStateCache(tmp_path / "s.json", session_timeout_seconds=60)
        start = datetime(2026, 6, 1, 18, 0, tzinfo=timezone.utc)
        cache.touch(start)
        assert not cache.is_session_expired(start + timedelta(seconds=59))
        assert cache.is_session_expired(start + timedelta(seconds=61))


class TestGigScopedValues:
    def test_hidden_section_toggles(self, tmp_path) -> None:
        cache = LocalStateCache(tmp_path / "s.json")
        assert cache.toggle_hidden_section("g", "Latin") is True
        assert cache.toggle_hidden_section("g", "Latin") is False

    def test_clear_locked_is_per_gig(self, tmp_path) -> None:
        cache = LocalStateCache(tmp_path / "s.json")
        cache.lock_song("g", "s")
        cache.lock_song("h", "s")
        cache.clear_locked("g")
        assert not cache.is_locked("g", "s")
        assert cache.is_locked("h", "s")

    def test_forget_gig_drops_everything_for_it(self, tmp_path) -> None:
        cache = LocalStateCache(tmp_path / "s.json")
        cache.lock_song("g", "s")
        cache.set_section_order("g", "Dance", ["s"])
        cache.toggle_hidden_section("g", "Dance")
        cache.set_build_complete("h", "Dinner")
        cache.forget_gig("g")
        assert not cache.is_locked("g", "s")
        assert cache.section_order("g") == {}
        assert cache.is_build_complete("h", "Dinner")
