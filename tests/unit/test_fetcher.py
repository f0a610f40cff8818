#!/usr/bin/env python3
"""
Unit tests for the cache-coordinating OffsetFetcher
"""

import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from offset_cache.fetcher import OffsetFetcher, FetchResult, Decision, Outcome, decide
from offset_cache.store import CacheStore, CacheEntry
from dumpspace.client import DumpspaceClient
from offset_cache.errors import (
    CorruptEntry, StorageError,
    ProviderUnreachable, ProviderError,
    FetchError, OffsetsUnavailable, OffsetsProviderError,
)


class FakeProvider:
    """Scriptable provider that counts calls."""

    def __init__(self, version="v1", payloads=None):
        self.version = version
        self.payloads = payloads or {}
        self.version_error = None
        self.payload_error = None
        self.version_calls = 0
        self.payload_calls = 0

    def fetch_version(self, game_id):
        self.version_calls += 1
        if self.version_error:
            raise self.version_error
        return self.version

    def fetch_payload(self, game_id):
        self.payload_calls += 1
        if self.payload_error:
            raise self.payload_error
        return self.version, self.payloads.get(self.version, f"{game_id}@{self.version}".encode())


class InMemoryStore:
    """Dict-backed stand-in for CacheStore."""

    def __init__(self):
        self.entries = {}
        self.read_error = None
        self.write_error = None
        self.writes = 0

    def read(self, game_id):
        if self.read_error:
            raise self.read_error
        return self.entries.get(game_id)

    def write(self, entry):
        if self.write_error:
            raise self.write_error
        self.writes += 1
        self.entries[entry.game_id] = entry

    def invalidate(self, game_id):
        return self.entries.pop(game_id, None) is not None


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def fetcher(store, provider):
    return OffsetFetcher(store, provider)


# ── Decision table ───────────────────────────────────────────────

class TestDecide:

    def test_absent_and_version_known(self):
        assert decide(None, "v1") is Decision.REFRESH

    def test_absent_and_version_unknown(self):
        assert decide(None, None) is Decision.UNAVAILABLE

    def test_present_and_version_matches(self):
        assert decide(CacheEntry("g", "v1", b"x"), "v1") is Decision.CACHE_HIT

    def test_present_and_version_differs(self):
        assert decide(CacheEntry("g", "v1", b"x"), "v2") is Decision.REFRESH

    def test_present_and_version_unknown(self):
        assert decide(CacheEntry("g", "v1", b"x"), None) is Decision.STALE_FALLBACK

    def test_versions_compared_by_equality_only(self):
        # "10" sorts before "9" as text; only sameness matters.
        assert decide(CacheEntry("g", "10", b"x"), "9") is Decision.REFRESH
        assert decide(CacheEntry("g", "9", b"x"), "10") is Decision.REFRESH


# ── get_offsets ──────────────────────────────────────────────────

class TestColdCache:

    def test_cold_cache_fetches_and_stores(self, fetcher, store, provider):
        result = fetcher.get_offsets("G")

        assert isinstance(result, FetchResult)
        assert result.outcome is Outcome.REFRESHED
        assert result.payload == b"G@v1"
        assert result.version == "v1"
        assert not result.storage_degraded
        assert provider.version_calls == 1
        assert provider.payload_calls == 1
        assert store.entries["G"].payload == b"G@v1"

    def test_second_call_skips_payload_fetch(self, fetcher, provider):
        fetcher.get_offsets("G")
        result = fetcher.get_offsets("G")

        assert result.outcome is Outcome.CACHE_HIT
        assert result.payload == b"G@v1"
        assert provider.version_calls == 2
        assert provider.payload_calls == 1

    def test_cold_cache_and_unreachable_provider(self, fetcher, provider):
        provider.version_error = ProviderUnreachable("connection refused")

        with pytest.raises(OffsetsUnavailable) as exc:
            fetcher.get_offsets("G")

        assert exc.value.game_id == "G"
        assert isinstance(exc.value.__cause__, ProviderUnreachable)
        assert provider.payload_calls == 0

    def test_version_check_provider_error_counts_as_unreachable(self, fetcher, provider):
        provider.version_error = ProviderError("502 from host", status_code=502)

        with pytest.raises(OffsetsUnavailable):
            fetcher.get_offsets("G")

    def test_numeric_game_id(self, fetcher, store):
        result = fetcher.get_offsets(1234)
        assert result.game_id == "1234"
        assert "1234" in store.entries

    def test_empty_game_id_rejected(self, fetcher, provider):
        with pytest.raises(ValueError):
            fetcher.get_offsets("")
        assert provider.version_calls == 0


class TestStaleness:

    def test_changed_version_refreshes(self, fetcher, store, provider):
        store.entries["G"] = CacheEntry("G", "v1", b"old offsets")
        provider.version = "v2"

        result = fetcher.get_offsets("G")

        assert result.outcome is Outcome.REFRESHED
        assert result.payload == b"G@v2"
        assert result.payload != b"old offsets"
        assert store.entries["G"].version == "v2"
        assert store.entries["G"].payload == b"G@v2"

    def test_write_uses_version_from_check(self, store):
        provider = MagicMock()
        provider.fetch_version.return_value = "v2"
        provider.fetch_payload.return_value = ("v3", b"moved on")
        fetcher = OffsetFetcher(store, provider)

        result = fetcher.get_offsets("G")

        assert result.version == "v2"
        assert store.entries["G"].version == "v2"
        assert provider.fetch_version.call_count == 1


class TestFallback:

    def test_unreachable_provider_serves_cached_copy(self, fetcher, store, provider):
        store.entries["G"] = CacheEntry("G", "abc", b"cached offsets")
        provider.version_error = ProviderUnreachable("timeout")

        result = fetcher.get_offsets("G")

        assert result.outcome is Outcome.STALE_FALLBACK
        assert result.is_stale
        assert result.payload == b"cached offsets"
        assert result.version == "abc"
        assert result.warnings
        assert provider.payload_calls == 0

    def test_failed_refresh_falls_back_to_stale(self, fetcher, store, provider):
        store.entries["G"] = CacheEntry("G", "v1", b"cached offsets")
        provider.version = "v2"
        provider.payload_error = ProviderError("EnumsInfo: not valid JSON")

        result = fetcher.get_offsets("G")

        assert result.outcome is Outcome.STALE_FALLBACK
        assert result.payload == b"cached offsets"
        assert store.entries["G"].version == "v1"

    def test_failed_refresh_without_cache_is_provider_error(self, fetcher, provider):
        provider.payload_error = ProviderError("ClassesInfo returned 404", status_code=404)

        with pytest.raises(OffsetsProviderError) as exc:
            fetcher.get_offsets("G")

        assert isinstance(exc.value, FetchError)
        assert isinstance(exc.value.__cause__, ProviderError)

    def test_unreachable_during_payload_without_cache(self, fetcher, provider):
        provider.payload_error = ProviderUnreachable("connection reset")

        with pytest.raises(OffsetsUnavailable):
            fetcher.get_offsets("G")


class TestStorageDegradation:

    def test_corrupt_entry_treated_as_miss(self, fetcher, store, provider):
        store.read_error = CorruptEntry("G", "checksum mismatch")

        result = fetcher.get_offsets("G")

        assert result.outcome is Outcome.REFRESHED
        assert provider.payload_calls == 1
        assert store.writes == 1

    def test_corrupt_entry_and_unreachable_provider(self, fetcher, store, provider):
        store.read_error = CorruptEntry("G", "truncated")
        provider.version_error = ProviderUnreachable("offline")

        with pytest.raises(OffsetsUnavailable):
            fetcher.get_offsets("G")

    def test_unreadable_store_treated_as_miss(self, fetcher, store, provider):
        store.read_error = StorageError("permission denied")

        result = fetcher.get_offsets("G")

        assert result.outcome is Outcome.REFRESHED

    def test_write_failure_still_returns_payload(self, fetcher, store, provider):
        store.write_error = StorageError("disk full")

        result = fetcher.get_offsets("G")

        assert result.payload == b"G@v1"
        assert result.outcome is Outcome.REFRESHED
        assert result.storage_degraded
        assert any("disk full" in w for w in result.warnings)
        assert fetcher.get_stats()["storage_degraded"] == 1


class TestInvalidateAndStats:

    def test_invalidate_forces_refetch(self, fetcher, provider):
        fetcher.get_offsets("G")
        assert fetcher.invalidate("G") is True
        assert fetcher.invalidate("G") is False

        result = fetcher.get_offsets("G")

        assert result.outcome is Outcome.REFRESHED
        assert provider.payload_calls == 2

    def test_stats(self, fetcher, store, provider):
        fetcher.get_offsets("G")   # refresh
        fetcher.get_offsets("G")   # hit
        fetcher.get_offsets("G")   # hit
        provider.version_error = ProviderUnreachable("down")
        fetcher.get_offsets("G")   # stale

        stats = fetcher.get_stats()
        assert stats["refreshes"] == 1
        assert stats["hits"] == 2
        assert stats["stale_fallbacks"] == 1
        assert stats["version_checks"] == 4
        assert stats["payload_fetches"] == 1
        assert stats["served"] == 4
        assert stats["hit_rate_percent"] == 50.0

    def test_result_to_dict(self, fetcher):
        summary = fetcher.get_offsets("G").to_dict()
        assert summary == {
            "game_id": "G",
            "version": "v1",
            "outcome": "refreshed",
            "size": len(b"G@v1"),
            "storage_degraded": False,
            "warnings": [],
        }


class TestWithFileStore:
    """End-to-end against the real filesystem store."""

    @pytest.fixture
    def file_fetcher(self, tmp_path, provider):
        return OffsetFetcher(CacheStore(tmp_path), provider)

    def test_corrupt_file_behaves_like_empty_cache(self, file_fetcher, provider):
        file_fetcher.get_offsets("G")
        path = file_fetcher.store.path_for("G")
        path.write_bytes(path.read_bytes()[:20])

        result = file_fetcher.get_offsets("G")

        assert result.outcome is Outcome.REFRESHED
        assert provider.payload_calls == 2
        assert file_fetcher.store.read("G").payload == b"G@v1"

    def test_offline_after_warm_cache(self, file_fetcher, provider):
        file_fetcher.get_offsets("G")
        provider.version_error = ProviderUnreachable("offline")

        result = file_fetcher.get_offsets("G")

        assert result.outcome is Outcome.STALE_FALLBACK
        assert result.payload == b"G@v1"

    def test_unwritable_cache_dir(self, tmp_path, provider):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        fetcher = OffsetFetcher(CacheStore(blocker), provider)

        result = fetcher.get_offsets("G")

        assert result.storage_degraded
        assert result.payload == b"G@v1"

    def test_deeply_nested_file_behaves_like_empty_cache(self, file_fetcher, provider):
        file_fetcher.get_offsets("G")
        file_fetcher.store.path_for("G").write_bytes(b"[" * 200000)

        result = file_fetcher.get_offsets("G")

        assert result.outcome is Outcome.REFRESHED
        assert file_fetcher.store.read("G").payload == b"G@v1"


MALFORMED_GAME = {"hash": "G", "name": "G", "engine": "e", "location": "l",
                  "uploaded": 1, "uploader": "someone"}


def game_list_response(body):
    resp = MagicMock()
    resp.status_code = 200
    resp.json.return_value = body
    return resp


class TestMalformedProviderData:
    """A real DumpspaceClient fed bad game lists must fail as a provider error."""

    @patch("dumpspace.client.requests.get")
    def test_malformed_list_falls_back_to_cached_copy(self, mock_get, store):
        store.write(CacheEntry("G", "1", b"G@1"))
        mock_get.return_value = game_list_response({"games": [MALFORMED_GAME]})
        fetcher = OffsetFetcher(store, DumpspaceClient())

        result = fetcher.get_offsets("G")

        assert result.outcome is Outcome.STALE_FALLBACK
        assert result.payload == b"G@1"

    @patch("dumpspace.client.requests.get")
    def test_malformed_list_with_cold_cache(self, mock_get, store):
        mock_get.return_value = game_list_response({"games": ["G"]})
        fetcher = OffsetFetcher(store, DumpspaceClient())

        with pytest.raises(OffsetsUnavailable):
            fetcher.get_offsets("G")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
