"""Configuration loader for the offset cache."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULTS: Dict[str, Any] = {
    "cache_dir": "~/.cache/dumpspace/offsets",
    "base_url": "https://dumpspace.spuckwaffel.com",
    "request_timeout_sec": 30,
    "game_list_ttl_sec": 60,
    "log_level": "INFO",
}


@dataclass(frozen=True)
class OffsetCacheConfig:
    cache_dir: Path
    base_url: str
    request_timeout_sec: int
    game_list_ttl_sec: int
    log_level: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OffsetCacheConfig":
        # A key left empty in YAML (null) falls back to its default.
        values = {key: data.get(key) if data.get(key) is not None else default
                  for key, default in DEFAULTS.items()}
        return cls(
            cache_dir=Path(values["cache_dir"]).expanduser(),
            base_url=str(values["base_url"]).rstrip("/"),
            request_timeout_sec=int(values["request_timeout_sec"]),
            game_list_ttl_sec=int(values["game_list_ttl_sec"]),
            log_level=str(values["log_level"]).upper(),
        )


ENV_MAP = {
    "cache_dir": "OFFSET_CACHE_DIR",
    "base_url": "DUMPSPACE_BASE_URL",
    "request_timeout_sec": "DUMPSPACE_TIMEOUT_SEC",
    "game_list_ttl_sec": "DUMPSPACE_GAME_LIST_TTL_SEC",
    "log_level": "OFFSET_CACHE_LOG_LEVEL",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        if key in {"request_timeout_sec", "game_list_ttl_sec"}:
            value = int(value)
        merged[key] = value

    return merged


def load_config(config_path: Optional[str | Path] = None) -> OffsetCacheConfig:
    data = dict(DEFAULTS)
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        data.update(load_yaml(path))

    data = merge_env_overrides(data)
    return OffsetCacheConfig.from_dict(data)
