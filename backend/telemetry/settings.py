from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel

_FALSY = {"0", "false", "no", "off"}


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


class RuntimeSettings(BaseModel):
    """
    Process-level switches read from `MARKERMAP_*` environment variables.

    Map definitions live in `maps/*/map.yaml`; this only covers the pass log
    and logging.
    """

    record_passes: bool = True
    pass_log_path: Path
    log_level: int = logging.INFO

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        flag = (os.getenv("MARKERMAP_TELEMETRY") or "1").strip().lower()
        level_name = (os.getenv("MARKERMAP_LOG_LEVEL") or "INFO").strip().upper()
        level = logging.getLevelName(level_name)
        return cls(
            record_passes=flag not in _FALSY,
            pass_log_path=Path(
                os.getenv("MARKERMAP_TELEMETRY_PATH")
                or (_repo_root() / "data" / "telemetry" / "passes.duckdb")
            ),
            log_level=level if isinstance(level, int) else logging.INFO,
        )
