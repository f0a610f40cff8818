#!/usr/bin/env python3
"""
Dumpspace API Client — Offset Provider
Wraps the public Dumpspace file host (dumpspace.spuckwaffel.com).

Implements:
- get_game_list() -> GameList
- get_game(game_id) -> Game
- fetch_version(game_id) -> str
- fetch_payload(game_id) -> (str, bytes)
- get_stats() -> dict
"""

import gzip
import json
import logging
import time
import zlib
import requests
from typing import Optional, Dict, Any, List, Tuple
from dataclasses import dataclass, field, asdict

from offset_cache.errors import ProviderError, ProviderUnreachable

logger = logging.getLogger(__name__)

BASE_URL = "https://dumpspace.spuckwaffel.com"
GAME_LIST_PATH = "/Games/GameList.json"

# FunctionsInfo is published but not consumed.
BLOB_NAMES = ("ClassesInfo", "StructsInfo", "EnumsInfo", "OffsetsInfo")


@dataclass
class Uploader:
    name: str = ""
    link: str = ""


@dataclass
class Game:
    """One entry of the Dumpspace game list."""
    hash: str
    name: str
    engine: str
    location: str
    uploaded: int  # unix timestamp
    uploader: Uploader = field(default_factory=Uploader)

    @property
    def version(self) -> str:
        return str(self.uploaded)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class GameList:
    games: List[Game] = field(default_factory=list)
    fetched_at: float = field(default_factory=time.time)

    def get_game_by_hash(self, game_hash: str) -> Optional[Game]:
        return next((g for g in self.games if g.hash == game_hash), None)

    def get_game_by_name(self, name: str) -> Optional[Game]:
        return next((g for g in self.games if g.name == name), None)


class DumpspaceClient:
    """
    Dumpspace offset provider.

    The game list is the cheap version check: a game's `uploaded` timestamp
    changes whenever a new dump is published. Payload fetches download the
    gzipped JSON blobs for the game and bundle them into one document.

    Network failures raise ProviderUnreachable; error statuses and bodies
    that are not gzip/JSON raise ProviderError.
    """

    DEFAULT_TIMEOUT = 30
    DEFAULT_GAME_LIST_TTL = 60

    def __init__(self, base_url: str = None, timeout: int = None, game_list_ttl: int = None):
        self.base_url = (base_url or BASE_URL).rstrip("/")
        self.timeout = self.DEFAULT_TIMEOUT if timeout is None else timeout
        self.game_list_ttl = self.DEFAULT_GAME_LIST_TTL if game_list_ttl is None else game_list_ttl

        self._game_list: Optional[GameList] = None
        self._request_count = 0
        self._error_count = 0

        logger.info(f"DumpspaceClient initialized ({self.base_url})")

    def _get(self, path: str) -> requests.Response:
        """GET a path on the Dumpspace host. Raises on any failure."""
        url = f"{self.base_url}{path}"
        self._request_count += 1

        try:
            # 0 disables the deadline.
            resp = requests.get(url, timeout=self.timeout or None)
        except requests.Timeout as e:
            self._error_count += 1
            logger.error(f"Dumpspace timeout: GET {path}")
            raise ProviderUnreachable(f"timeout fetching {url}") from e
        except requests.ConnectionError as e:
            self._error_count += 1
            logger.error(f"Dumpspace connection error: GET {path}")
            raise ProviderUnreachable(f"cannot connect to {self.base_url}: {e}") from e
        except requests.RequestException as e:
            self._error_count += 1
            logger.error(f"Dumpspace unexpected error: GET {path}: {e}")
            raise ProviderUnreachable(f"request for {url} failed: {e}") from e

        if resp.status_code >= 400:
            self._error_count += 1
            logger.warning(f"Dumpspace error: GET {path} -> {resp.status_code} {resp.text[:300]}")
            raise ProviderError(
                f"GET {url} returned {resp.status_code}", status_code=resp.status_code
            )
        return resp

    # ── Game list ────────────────────────────────────────────────

    def get_game_list(self) -> GameList:
        """Download and parse the full game list."""
        resp = self._get(GAME_LIST_PATH)
        try:
            games = [self._parse_game(g) for g in resp.json()["games"]]
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            self._error_count += 1
            raise ProviderError(f"malformed game list: {e}") from e

        self._game_list = GameList(games=games)
        logger.info(f"Listed {len(games)} games")
        return self._game_list

    def get_game(self, game_id: str, refresh: bool = True) -> Game:
        """Resolve a game hash, optionally reusing a recent game list."""
        game_list = self._game_list
        if refresh or game_list is None or time.time() - game_list.fetched_at > self.game_list_ttl:
            game_list = self.get_game_list()

        game = game_list.get_game_by_hash(game_id)
        if game is None:
            raise ProviderError(f"game {game_id!r} not found on Dumpspace")
        return game

    # ── Provider protocol ────────────────────────────────────────

    def fetch_version(self, game_id: str) -> str:
        """Current version identifier (upload timestamp) for a game."""
        return self.get_game(game_id, refresh=True).version

    def fetch_payload(self, game_id: str) -> Tuple[str, bytes]:
        """Download every offset blob for a game as one JSON document."""
        game = self.get_game(game_id, refresh=False)

        blobs = {}
        for blob_name in BLOB_NAMES:
            blobs[blob_name] = self._download_blob(game, blob_name)

        bundle = {
            "game": {
                "hash": game.hash,
                "name": game.name,
                "engine": game.engine,
                "location": game.location,
                "uploaded": game.uploaded,
            },
            "blobs": blobs,
        }
        payload = json.dumps(bundle, sort_keys=True, separators=(",", ":")).encode("utf-8")
        logger.info(f"Downloaded {len(blobs)} blobs for {game.name} ({len(payload)} bytes)")
        return game.version, payload

    # ── Helpers ──────────────────────────────────────────────────

    def blob_path(self, game: Game, blob_name: str) -> str:
        return f"/Games/{game.engine}/{game.location}/{blob_name}.json.gz"

    def _download_blob(self, game: Game, blob_name: str) -> Any:
        resp = self._get(self.blob_path(game, blob_name))
        content = resp.content

        # Body may already be decoded via Content-Encoding.
        if content[:2] == b"\x1f\x8b":
            try:
                content = gzip.decompress(content)
            except (OSError, EOFError, zlib.error) as e:
                self._error_count += 1
                raise ProviderError(f"{blob_name} for {game.hash}: bad gzip data ({e})") from e

        try:
            return json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, ValueError, RecursionError) as e:
            self._error_count += 1
            raise ProviderError(f"{blob_name} for {game.hash}: not valid JSON ({e})") from e

    @staticmethod
    def _parse_game(data: Dict[str, Any]) -> Game:
        if not isinstance(data, dict):
            raise TypeError(f"game entry is {type(data).__name__}, not an object")
        uploader = data.get("uploader") or {}
        if not isinstance(uploader, dict):
            raise TypeError(f"uploader of {data.get('hash')!r} is {type(uploader).__name__}, not an object")
        return Game(
            hash=str(data["hash"]),
            name=data.get("name", ""),
            engine=data["engine"],
            location=data["location"],
            uploaded=int(data.get("uploaded", 0)),
            uploader=Uploader(name=uploader.get("name", ""), link=uploader.get("link", "")),
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get client-side stats."""
        return {
            "total_requests": self._request_count,
            "total_errors": self._error_count,
            "error_rate_percent": (
                round(self._error_count / self._request_count * 100, 1)
                if self._request_count > 0 else 0
            ),
            "games_known": len(self._game_list.games) if self._game_list else 0,
        }


if __name__ == "__main__":
    import sys
    logging.basicConfig(level=logging.INFO)

    client = DumpspaceClient()
    game_id = sys.argv[1] if len(sys.argv) > 1 else "6b77eceb"

    game = client.get_game(game_id)
    print(f"\n{game.name} [{game.hash}] {game.engine}/{game.location} version={game.version}")
    print(f"\nClient stats: {json.dumps(client.get_stats(), indent=2)}")
