"""
Dumpspace Offset Cache
Version-checked local caching of game offset dumps.
"""

from .errors import (
    OffsetCacheError, StorageError, CorruptEntry,
    ProviderUnreachable, ProviderError,
    FetchError, OffsetsUnavailable, OffsetsProviderError,
)
from .store import CacheStore, CacheEntry
from .fetcher import OffsetFetcher, OffsetProvider, FetchResult, Decision, Outcome, decide
from .config import OffsetCacheConfig, load_config

__all__ = [
    'OffsetCacheError', 'StorageError', 'CorruptEntry',
    'ProviderUnreachable', 'ProviderError',
    'FetchError', 'OffsetsUnavailable', 'OffsetsProviderError',
    'CacheStore', 'CacheEntry',
    'OffsetFetcher', 'OffsetProvider', 'FetchResult', 'Decision', 'Outcome', 'decide',
    'OffsetCacheConfig', 'load_config',
]
