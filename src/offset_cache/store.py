#!/usr/bin/env python3
"""
Offset Cache Store
File-per-game durable storage for downloaded offset payloads.

Implements:
- read(game_id) -> CacheEntry | None   (raises CorruptEntry / StorageError)
- write(entry)                          (atomic replace, raises StorageError)
- invalidate(game_id) -> bool           (idempotent)
- path_for(game_id) -> Path
"""

import base64
import binascii
import hashlib
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jsonschema import Draft7Validator

from .errors import CorruptEntry, StorageError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = os.path.expanduser("~/.cache/dumpspace/offsets")

ENTRY_FORMAT = 1

ENTRY_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["format", "game_id", "version", "last_written", "size", "sha256", "payload"],
    "properties": {
        "format": {"type": "integer"},
        "game_id": {"type": "string", "minLength": 1},
        "version": {"type": "string"},
        "last_written": {"type": "number", "minimum": 0},
        "size": {"type": "integer", "minimum": 0},
        "sha256": {"type": "string", "pattern": "^[0-9a-f]{64}$"},
        "payload": {"type": "string"},
    },
}

_validator = Draft7Validator(ENTRY_SCHEMA)

# Temp files are created 0600; entries get the mode a plain open() would give.
_UMASK = os.umask(0)
os.umask(_UMASK)
ENTRY_FILE_MODE = 0o666 & ~_UMASK


def normalize_game_id(game_id: Union[str, int]) -> str:
    """Game ids may be strings or numbers; both are keyed by their text form."""
    normalized = str(game_id).strip() if game_id is not None else ""
    if not normalized:
        raise ValueError("game_id must be a non-empty string or number")
    return normalized


@dataclass
class CacheEntry:
    """One cached payload. At most one exists per game."""
    game_id: str
    version: str
    payload: bytes = field(repr=False)
    last_written: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        self.game_id = normalize_game_id(self.game_id)
        self.version = str(self.version)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": ENTRY_FORMAT,
            "game_id": self.game_id,
            "version": self.version,
            "last_written": self.last_written,
            "size": len(self.payload),
            "sha256": hashlib.sha256(self.payload).hexdigest(),
            "payload": base64.b64encode(self.payload).decode("ascii"),
        }


class CacheStore:
    """
    Filesystem-backed cache of offset payloads, one JSON file per game.

    Writes go to a temp file in the same directory and are swapped in with
    os.replace, so readers see either the old entry or the new one.
    Every read re-verifies size and SHA-256 of the payload.
    """

    def __init__(self, cache_dir: Union[str, Path, None] = None):
        self.cache_dir = Path(cache_dir or DEFAULT_CACHE_DIR).expanduser()
        logger.info(f"CacheStore initialized at {self.cache_dir}")

    def path_for(self, game_id: Union[str, int]) -> Path:
        """Deterministic file location for a game's entry."""
        key = hashlib.sha256(normalize_game_id(game_id).encode("utf-8")).hexdigest()[:16]
        return self.cache_dir / f"{key}.json"

    def read(self, game_id: Union[str, int]) -> Optional[CacheEntry]:
        """
        Load the entry for a game.

        Returns:
            CacheEntry, or None if nothing is stored for the game.

        Raises:
            CorruptEntry: stored data is unreadable or fails verification.
            StorageError: the file exists but could not be read.
        """
        game_id = normalize_game_id(game_id)
        path = self.path_for(game_id)

        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            logger.debug(f"No cache entry for {game_id} ({path})")
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

        return self._decode(game_id, raw)

    def write(self, entry: CacheEntry) -> None:
        """Persist an entry, atomically replacing any previous one."""
        game_id = entry.game_id
        path = self.path_for(game_id)
        data = json.dumps(entry.to_dict()).encode("utf-8")

        tmp_name = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=self.cache_dir, prefix=f".{path.stem}.", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.chmod(tmp_name, ENTRY_FILE_MODE)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StorageError(f"Failed to write cache entry for {game_id} to {path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning(f"Could not remove temp file {tmp_name}")

        logger.debug(f"Cached {game_id} (version={entry.version}, {len(entry.payload)} bytes)")

    def invalidate(self, game_id: Union[str, int]) -> bool:
        """Remove a game's entry. Returns False if there was nothing to remove."""
        game_id = normalize_game_id(game_id)
        path = self.path_for(game_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to remove {path}: {e}") from e

        logger.info(f"Invalidated cache entry for {game_id}")
        return True

    # ── Helpers ──────────────────────────────────────────────────

    @staticmethod
    def _decode(game_id: str, raw: bytes) -> CacheEntry:
        try:
            doc = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError, RecursionError) as e:
            raise CorruptEntry(game_id, f"not valid JSON ({e})") from e

        errors = sorted(_validator.iter_errors(doc), key=lambda e: list(e.path))
        if errors:
            raise CorruptEntry(game_id, ", ".join(error.message for error in errors))

        if doc["format"] != ENTRY_FORMAT:
            raise CorruptEntry(game_id, f"unsupported format {doc['format']}")
        if doc["game_id"] != game_id:
            raise CorruptEntry(game_id, f"entry belongs to {doc['game_id']!r}")

        try:
            payload = base64.b64decode(doc["payload"], validate=True)
        except (binascii.Error, ValueError) as e:
            raise CorruptEntry(game_id, f"payload is not base64 ({e})") from e

        if len(payload) != doc["size"]:
            raise CorruptEntry(game_id, f"size mismatch ({len(payload)} != {doc['size']})")
        if hashlib.sha256(payload).hexdigest() != doc["sha256"]:
            raise CorruptEntry(game_id, "checksum mismatch")

        return CacheEntry(
            game_id=game_id,
            version=doc["version"],
            payload=payload,
            last_written=float(doc["last_written"]),
        )
