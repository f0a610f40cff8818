"""Exception hierarchy for the offset cache and its collaborators."""

from __future__ import annotations

from typing import Optional


class OffsetCacheError(Exception):
    """Base class for every error raised by this package."""


# ── Local storage ────────────────────────────────────────────────

class StorageError(OffsetCacheError):
    """Local I/O failure (permission denied, disk full, ...)."""


class CorruptEntry(OffsetCacheError):
    """A cache file exists but cannot be deserialized or verified."""

    def __init__(self, game_id: str, reason: str) -> None:
        super().__init__(f"corrupt cache entry for {game_id!r}: {reason}")
        self.game_id = game_id
        self.reason = reason


# ── Remote provider ──────────────────────────────────────────────

class ProviderUnreachable(OffsetCacheError):
    """Network-level failure talking to the provider."""


class ProviderError(OffsetCacheError):
    """Provider answered, but with an error status or a malformed body."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ── Surfaced to callers of get_offsets ───────────────────────────

class FetchError(OffsetCacheError):
    def __init__(self, game_id: str, message: str) -> None:
        super().__init__(message)
        self.game_id = game_id


class OffsetsUnavailable(FetchError):
    """No usable local cache and the provider could not be reached."""


class OffsetsProviderError(FetchError):
    """The payload fetch failed and there was no cached copy to fall back on."""
