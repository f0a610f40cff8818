#!/usr/bin/env python3
"""
Cache-Coordinating Offset Fetcher

Checks the provider's current version for a game, compares it with the
locally cached copy, and either serves the cache or refreshes it.

Implements:
- decide(cached, remote_version) -> Decision
- OffsetFetcher.get_offsets(game_id) -> FetchResult
- OffsetFetcher.invalidate(game_id) -> bool
- OffsetFetcher.get_stats() -> dict
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from .errors import (
    CorruptEntry,
    OffsetsProviderError,
    OffsetsUnavailable,
    ProviderError,
    ProviderUnreachable,
    StorageError,
)
from .store import CacheEntry, CacheStore, normalize_game_id

logger = logging.getLogger(__name__)


class OffsetProvider(Protocol):
    """Remote source of offset payloads."""

    def fetch_version(self, game_id: str) -> str:
        ...

    def fetch_payload(self, game_id: str) -> Tuple[str, bytes]:
        ...


class Decision(Enum):
    CACHE_HIT = "cache_hit"
    REFRESH = "refresh"
    STALE_FALLBACK = "stale_fallback"
    UNAVAILABLE = "unavailable"


class Outcome(Enum):
    """How a successful get_offsets call was satisfied."""
    CACHE_HIT = "cache_hit"
    REFRESHED = "refreshed"
    STALE_FALLBACK = "stale_fallback"


def decide(cached: Optional[CacheEntry], remote_version: Optional[str]) -> Decision:
    """
    Map (local cache, remote version check) to an action.

    remote_version is None when the version check failed. Only equality of
    versions is meaningful.
    """
    if remote_version is None:
        return Decision.UNAVAILABLE if cached is None else Decision.STALE_FALLBACK
    if cached is not None and cached.version == remote_version:
        return Decision.CACHE_HIT
    return Decision.REFRESH


@dataclass
class FetchResult:
    """Offsets payload plus how it was obtained."""
    game_id: str
    payload: bytes = field(repr=False)
    version: str
    outcome: Outcome
    storage_degraded: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def is_stale(self) -> bool:
        return self.outcome is Outcome.STALE_FALLBACK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "game_id": self.game_id,
            "version": self.version,
            "outcome": self.outcome.value,
            "size": len(self.payload),
            "storage_degraded": self.storage_degraded,
            "warnings": list(self.warnings),
        }


class OffsetFetcher:
    """
    Serves offset payloads through a version-checked local cache.

    Store and provider are injected; the fetcher keeps no cached data of its
    own, only counters. Each call makes at most one version check and one
    payload fetch.
    """

    def __init__(self, store: CacheStore, provider: OffsetProvider):
        self.store = store
        self.provider = provider

        self.stats = {
            "hits": 0,
            "refreshes": 0,
            "stale_fallbacks": 0,
            "unavailable": 0,
            "provider_errors": 0,
            "storage_degraded": 0,
            "corrupt_entries": 0,
            "version_checks": 0,
            "payload_fetches": 0,
        }

    def get_offsets(self, game_id: Union[str, int]) -> FetchResult:
        """
        Return the offsets payload for a game.

        Raises:
            OffsetsUnavailable: no usable cache and the provider is unreachable.
            OffsetsProviderError: payload fetch failed with no cache to fall back on.
        """
        game_id = normalize_game_id(game_id)

        remote_version, version_error = self._check_version(game_id)
        cached = self._read_cache(game_id)

        decision = decide(cached, remote_version)

        if decision is Decision.CACHE_HIT:
            self.stats["hits"] += 1
            logger.debug(f"Cache hit for {game_id} (version={cached.version})")
            return FetchResult(game_id, cached.payload, cached.version, Outcome.CACHE_HIT)

        if decision is Decision.STALE_FALLBACK:
            return self._stale(cached, f"version check failed: {version_error}")

        if decision is Decision.UNAVAILABLE:
            self.stats["unavailable"] += 1
            logger.error(f"No cached offsets for {game_id} and provider unreachable: {version_error}")
            raise OffsetsUnavailable(
                game_id, f"offsets for {game_id!r} unavailable: no cache and {version_error}"
            ) from version_error

        return self._refresh(game_id, remote_version, cached)

    def invalidate(self, game_id: Union[str, int]) -> bool:
        """Force-evict a game's cached payload."""
        return self.store.invalidate(game_id)

    # ── Steps ────────────────────────────────────────────────────

    def _check_version(self, game_id: str):
        self.stats["version_checks"] += 1
        try:
            return str(self.provider.fetch_version(game_id)), None
        except (ProviderUnreachable, ProviderError) as e:
            logger.warning(f"Version check for {game_id} failed: {e}")
            return None, e

    def _read_cache(self, game_id: str) -> Optional[CacheEntry]:
        try:
            return self.store.read(game_id)
        except CorruptEntry as e:
            self.stats["corrupt_entries"] += 1
            logger.warning(f"Ignoring {e}")
        except StorageError as e:
            logger.warning(f"Cache unreadable for {game_id}, treating as miss: {e}")
        return None

    def _refresh(self, game_id: str, version: str, cached: Optional[CacheEntry]) -> FetchResult:
        self.stats["payload_fetches"] += 1
        try:
            fetched_version, payload = self.provider.fetch_payload(game_id)
        except (ProviderUnreachable, ProviderError) as e:
            if cached is not None:
                return self._stale(cached, f"refresh to version {version} failed: {e}")
            if isinstance(e, ProviderUnreachable):
                self.stats["unavailable"] += 1
                raise OffsetsUnavailable(
                    game_id, f"offsets for {game_id!r} unavailable: {e}"
                ) from e
            self.stats["provider_errors"] += 1
            raise OffsetsProviderError(
                game_id, f"provider failed to deliver offsets for {game_id!r}: {e}"
            ) from e

        if fetched_version != version:
            # Next call's version check corrects this.
            logger.info(
                f"Version of {game_id} moved during fetch ({version} -> {fetched_version}); "
                f"caching under {version}"
            )

        self.stats["refreshes"] += 1
        result = FetchResult(game_id, payload, version, Outcome.REFRESHED)

        entry = CacheEntry(game_id=game_id, version=version, payload=payload)
        try:
            self.store.write(entry)
        except StorageError as e:
            self.stats["storage_degraded"] += 1
            logger.warning(f"Serving uncached offsets for {game_id}: {e}")
            result.storage_degraded = True
            result.warnings.append(f"cache write failed: {e}")

        logger.info(
            f"Refreshed {game_id} to version {version} "
            f"(was {cached.version if cached else 'absent'}, {len(payload)} bytes)"
        )
        return result

    def _stale(self, cached: CacheEntry, reason: str) -> FetchResult:
        self.stats["stale_fallbacks"] += 1
        age = int(time.time() - cached.last_written)
        logger.warning(
            f"Serving stale offsets for {cached.game_id} "
            f"(version={cached.version}, age={age}s): {reason}"
        )
        return FetchResult(
            cached.game_id, cached.payload, cached.version, Outcome.STALE_FALLBACK,
            warnings=[reason],
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get fetcher statistics."""
        served = self.stats["hits"] + self.stats["refreshes"] + self.stats["stale_fallbacks"]
        hit_rate = (self.stats["hits"] / served * 100) if served > 0 else 0
        return {
            **self.stats,
            "served": served,
            "hit_rate_percent": round(hit_rate, 1),
        }
