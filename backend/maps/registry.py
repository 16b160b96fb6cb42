from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable

import yaml

from maps.types import MapConfig

DEFAULT_MAP_ID = "school_districts"


def _repo_root() -> Path:
    # .../backend/maps/registry.py -> repo root is 2 levels up
    return Path(__file__).resolve().parents[2]


def _maps_root() -> Path:
    override = os.getenv("MARKERMAP_MAPS_DIR")
    return Path(override) if override else _repo_root() / "maps"


@dataclass(frozen=True)
class MapEntry:
    config: MapConfig
    # Absolute path to map.yaml on disk (useful for debugging).
    path: Path


def _iter_map_yaml_files() -> Iterable[Path]:
    root = _maps_root()
    if not root.exists():
        return []
    # Convention: maps/*/map.yaml
    return root.glob("*/map.yaml")


def _load_yaml(path: Path) -> dict:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid map yaml root: {path}")
    return data


@lru_cache(maxsize=1)
def get_registry() -> dict[str, MapEntry]:
    out: dict[str, MapEntry] = {}
    for p in sorted(_iter_map_yaml_files(), key=lambda x: str(x)):
        cfg = MapConfig.model_validate(_load_yaml(p))
        if cfg.id in out:
            raise ValueError(f"Duplicate map id '{cfg.id}': {p} and {out[cfg.id].path}")
        out[cfg.id] = MapEntry(config=cfg, path=p)
    return out


def default_map_id() -> str:
    reg = get_registry()
    preferred = (os.getenv("MARKERMAP_MAP") or "").strip() or DEFAULT_MAP_ID
    if preferred in reg:
        return preferred
    # Fall back to stable ordering.
    return next(iter(reg.keys()), preferred)


def list_maps() -> list[MapConfig]:
    return [e.config for e in get_registry().values() if e.config.enabled]


def get_map(map_id: str | None) -> MapEntry:
    """
    Raises KeyError for unknown or disabled maps.
    """
    reg = get_registry()
    if not reg:
        raise RuntimeError("No maps discovered under `maps/*/map.yaml`")
    mid = (map_id or "").strip() or default_map_id()
    entry = reg.get(mid)
    if entry is None or not entry.config.enabled:
        raise KeyError(mid)
    return entry


def resolve_repo_path(repo_relative: str) -> Path:
    # Allow both "data/..." and "/data/..." inputs (normalize to repo-relative).
    rel = (repo_relative or "").lstrip("/")
    return _repo_root() / rel


def clear_registry_cache() -> None:
    """
    Clear in-memory map registry cache.

    Map YAML changes are otherwise not picked up until the process restarts.
    """
    get_registry.cache_clear()
