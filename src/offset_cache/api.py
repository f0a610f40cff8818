"""Wiring of the offset fetcher from configuration."""

from __future__ import annotations

import logging
from typing import Optional

from dumpspace.client import DumpspaceClient

from .config import OffsetCacheConfig, load_config
from .fetcher import OffsetFetcher
from .store import CacheStore

logger = logging.getLogger(__name__)


def build_fetcher(config: Optional[OffsetCacheConfig] = None) -> OffsetFetcher:
    """Create an OffsetFetcher backed by the filesystem store and Dumpspace."""
    config = config or load_config()
    store = CacheStore(config.cache_dir)
    provider = DumpspaceClient(
        base_url=config.base_url,
        timeout=config.request_timeout_sec,
        game_list_ttl=config.game_list_ttl_sec,
    )
    logger.debug(f"Built fetcher (cache_dir={config.cache_dir}, provider={config.base_url})")
    return OffsetFetcher(store, provider)
