#!/usr/bin/env python3
"""
Offset Cache command line

Usage:
    python -m offset_cache get <game_id> [config.yml]
    python -m offset_cache invalidate <game_id> [config.yml]

`get` fetches through the cache and prints a JSON summary plus fetcher
stats. `invalidate` force-evicts the cached copy, e.g. after the host
application detects a broken dump.
"""

import json
import logging
import sys

import yaml

from .api import build_fetcher
from .config import load_config
from .errors import FetchError, StorageError

logger = logging.getLogger(__name__)

COMMANDS = ("get", "invalidate")


def main(argv=None) -> int:
    """Entry point. Returns a process exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 2 or args[0] not in COMMANDS:
        print(__doc__.strip(), file=sys.stderr)
        return 2

    command, game_id = args[0], args[1]
    try:
        config = load_config(args[2] if len(args) > 2 else None)
    except (OSError, yaml.YAMLError, ValueError, TypeError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    fetcher = build_fetcher(config)

    if command == "invalidate":
        try:
            removed = fetcher.invalidate(game_id)
        except (StorageError, ValueError) as e:
            logger.error(f"Failed to invalidate cache: {e}")
            return 1
        print(json.dumps({"game_id": game_id, "removed": removed}))
        return 0

    try:
        result = fetcher.get_offsets(game_id)
    except (FetchError, ValueError) as e:
        logger.error(str(e))
        return 1

    print(json.dumps({"result": result.to_dict(), "stats": fetcher.get_stats()}, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
