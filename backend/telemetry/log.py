from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from telemetry.settings import RuntimeSettings

# Top-level packages whose loggers get the JSON handler.
PACKAGE_LOGGERS = ("api", "classify", "coordinator", "engine", "geo", "layers", "maps", "telemetry", "main")


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line: timestamp, level, logger, message (+ exception).
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(level: int | None = None) -> None:
    """
    Attach a JSON stream handler to the package loggers (idempotent).
    """
    lvl = RuntimeSettings.from_env().log_level if level is None else level
    for name in PACKAGE_LOGGERS:
        lg = logging.getLogger(name)
        lg.setLevel(lvl)
        if not any(isinstance(h.formatter, JSONFormatter) for h in lg.handlers):
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter())
            lg.addHandler(handler)
