from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import duckdb

from coordinator.coordinator import ClassificationEvent
from telemetry.settings import RuntimeSettings
from telemetry.sql import CREATE_PASSES_TABLE_SQL, INSERT_PASSES_SQL, SUMMARY_SQL_TEMPLATE

logger = logging.getLogger(__name__)

_BATCH_SIZE = 250
_FLUSH_INTERVAL_S = 0.5


def _safe_float(v) -> float | None:
    if v is None:
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


@dataclass
class TelemetryStore:
    """
    One DuckDB row per classification pass.

    `record` only enqueues; a single writer thread batches inserts so the event
    loop running the coordinator never waits on disk.
    """

    path: Path
    conn: duckdb.DuckDBPyConnection
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _q: "queue.Queue[tuple | threading.Event]" = field(default_factory=queue.Queue, repr=False)
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _worker: threading.Thread | None = field(default=None, repr=False)

    def ensure_schema(self) -> None:
        with self._lock:
            self.conn.execute(CREATE_PASSES_TABLE_SQL)

    def start(self) -> None:
        if self._worker is not None:
            return
        self._stop.clear()
        self._worker = threading.Thread(
            target=self._run, name="telemetry-writer", daemon=True
        )
        self._worker.start()

    def stop(self, *, timeout_s: float = 2.0) -> None:
        self._stop.set()
        w = self._worker
        if w is not None and w.is_alive():
            w.join(timeout=timeout_s)
        self._worker = None

    def record(self, map_id: str, event: ClassificationEvent) -> None:
        self.start()
        try:
            self._q.put_nowait(
                (
                    int(time.time() * 1000),
                    str(map_id),
                    int(event.pass_no),
                    str(event.trigger),
                    len(event.results),
                    int(event.marker_count),
                    int(event.visible_count),
                    len(event.invalid_polygon_ids),
                    float(event.duration_ms),
                )
            )
        except queue.Full:
            logger.warning("Telemetry queue full; dropping pass %s", event.pass_no)

    def flush(self, *, timeout_s: float = 2.0) -> None:
        """
        Block until every row recorded so far is written (used by tests).
        """
        if self._worker is None:
            return
        done = threading.Event()
        self._q.put(done)
        done.wait(timeout=timeout_s)

    def query(self, sql: str, params: list[Any] | None = None) -> list[tuple]:
        with self._lock:
            if params:
                return self.conn.execute(sql, params).fetchall()
            return self.conn.execute(sql).fetchall()

    def summary(self, *, map_id: str | None = None) -> list[dict[str, Any]]:
        where_sql = "WHERE map_id = ?" if map_id else ""
        rows = self.query(
            SUMMARY_SQL_TEMPLATE.format(where_sql=where_sql),
            [map_id] if map_id else None,
        )
        out: list[dict[str, Any]] = []
        for mid, n, last_pass, avg_ms, p50, p95, avg_visible, max_invalid in rows:
            out.append(
                {
                    "mapId": mid,
                    "n": int(n),
                    "lastPassNo": int(last_pass) if last_pass is not None else None,
                    "avgMs": _safe_float(avg_ms),
                    "p50Ms": _safe_float(p50),
                    "p95Ms": _safe_float(p95),
                    "avgVisible": _safe_float(avg_visible),
                    "maxInvalid": int(max_invalid) if max_invalid is not None else None,
                }
            )
        return out

    def reset(self) -> None:
        # Stop the writer first so it can't write to a closed connection.
        self.stop(timeout_s=2.0)
        with self._lock:
            self.conn.close()
            self.path.unlink(missing_ok=True)

    def _run(self) -> None:
        self.ensure_schema()
        batch: list[tuple] = []
        last_flush = time.time()

        def flush_batch() -> None:
            nonlocal batch
            if not batch:
                return
            with self._lock:
                self.conn.executemany(INSERT_PASSES_SQL, batch)
                # Make rows visible to readers immediately.
                self.conn.execute("CHECKPOINT;")
            batch = []

        while not self._stop.is_set():
            try:
                row = self._q.get(timeout=0.1)
            except queue.Empty:
                row = None

            if isinstance(row, threading.Event):
                flush_batch()
                last_flush = time.time()
                row.set()
                continue
            if row is not None:
                batch.append(row)

            now = time.time()
            if len(batch) >= _BATCH_SIZE or (batch and (now - last_flush) >= _FLUSH_INTERVAL_S):
                flush_batch()
                last_flush = now

        # Drain remaining
        waiting: list[threading.Event] = []
        while True:
            try:
                row = self._q.get_nowait()
            except queue.Empty:
                break
            if isinstance(row, threading.Event):
                waiting.append(row)
            else:
                batch.append(row)
        flush_batch()
        for done in waiting:
            done.set()


_STORE: TelemetryStore | None = None
_STORE_LOCK = threading.RLock()


def get_store(settings: RuntimeSettings | None = None) -> TelemetryStore | None:
    """
    The process-wide pass log, or None when pass recording is switched off.

    A changed `pass_log_path` (tests, dev sessions) closes the old file and
    opens the new one.
    """
    global _STORE
    cfg = settings or RuntimeSettings.from_env()
    if not cfg.record_passes:
        return None
    with _STORE_LOCK:
        path = cfg.pass_log_path
        if _STORE is not None:
            if _STORE.path.resolve() == path.resolve():
                return _STORE
            _STORE.stop(timeout_s=2.0)
            _STORE.conn.close()
            _STORE = None

        path.parent.mkdir(parents=True, exist_ok=True)
        _STORE = TelemetryStore(path=path, conn=duckdb.connect(str(path)))
        _STORE.ensure_schema()
        _STORE.start()
        logger.info("Recording classification passes to %s", path)
        return _STORE


def reset_store() -> None:
    """
    Close the pass log and delete its file.
    """
    global _STORE
    with _STORE_LOCK:
        if _STORE is not None:
            _STORE.reset()
            _STORE = None
        else:
            RuntimeSettings.from_env().pass_log_path.unlink(missing_ok=True)
