from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from coordinator.coordinator import ClassificationEvent, MapCoordinator
from coordinator.errors import LoadFailure
from geo.projection import WebMercatorProjection
from layers.loaders import load_geojson_polygons, load_marker_records, markers_from_records
from layers.types import Marker, PolygonFeature
from maps.registry import get_map, resolve_repo_path
from maps.types import MapConfig
from telemetry.store import TelemetryStore, get_store

logger = logging.getLogger(__name__)


@dataclass
class MapInstance:
    """
    One configured map: its coordinator plus the file-backed feeds that fill it.
    """

    config: MapConfig
    coordinator: MapCoordinator
    _start_task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def id(self) -> str:
        return self.config.id

    async def start(self) -> None:
        """
        Load polygons and the optional seed markers concurrently.

        Either may finish first. Every caller awaits the same load; a failure
        is reported by the coordinator and re-raised to each of them once both
        loads have settled.
        """
        if self._start_task is None:
            self._start_task = asyncio.ensure_future(self._load())
        # Shielded: one cancelled request must not cancel the load for the others.
        await asyncio.shield(self._start_task)

    async def _load(self) -> None:
        loads = [self.coordinator.load_polygons(self._read_polygons)]
        if self.config.markers.path:
            loads.append(self.coordinator.load_markers(self._read_seed_markers))

        outcomes = await asyncio.gather(*loads, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    def replace_markers(self, markers: Sequence[Marker]) -> None:
        self.coordinator.set_markers(markers)

    def replace_marker_records(self, records: list[dict[str, Any]]) -> list[Marker]:
        markers = markers_from_records(records, self.config.markers.fields)
        self.coordinator.set_markers(markers)
        return markers

    def close(self) -> None:
        self.coordinator.close()

    async def _read_polygons(self) -> list[PolygonFeature]:
        path = resolve_repo_path(self.config.polygons.path)
        if not path.exists():
            raise FileNotFoundError(f"Map '{self.id}' missing polygon file: {self.config.polygons.path}")
        return await asyncio.to_thread(load_geojson_polygons, path)

    async def _read_seed_markers(self) -> list[Marker]:
        rel = self.config.markers.path or ""
        path = resolve_repo_path(rel)
        if not path.exists():
            raise FileNotFoundError(f"Map '{self.id}' missing marker file: {rel}")
        records = await asyncio.to_thread(load_marker_records, path)
        return markers_from_records(records, self.config.markers.fields)


def build_instance(config: MapConfig, *, store: TelemetryStore | None = None) -> MapInstance:
    """
    Wire a coordinator for `config`. Passes are recorded to `store` when given.
    """
    coordinator = MapCoordinator(
        WebMercatorProjection(zoom=config.label_zoom),
        label_offset_px=config.labels.offsetPx,
        name=config.id,
    )
    map_id = config.id

    def _record(event: ClassificationEvent) -> None:
        store.record(map_id, event)

    def _log_failure(failure: LoadFailure) -> None:
        logger.warning("Map '%s' will not classify until %s load succeeds", map_id, failure.source)

    if store is not None:
        coordinator.subscribe(_record)
    coordinator.on_load_failure(_log_failure)
    return MapInstance(config=config, coordinator=coordinator)


_instances: dict[str, MapInstance] = {}


async def get_instance(map_id: str | None) -> MapInstance:
    """
    Started instance for a configured map; one per map id per process.

    Raises KeyError for unknown maps and LoadFailure when a feed fails (the
    instance is dropped so the next call starts fresh).
    """
    entry = get_map(map_id)
    mid = entry.config.id
    inst = _instances.get(mid)
    if inst is None:
        inst = build_instance(entry.config, store=get_store())
        _instances[mid] = inst
    # Concurrent callers share the same start; all of them see its outcome.
    try:
        await inst.start()
    except LoadFailure:
        if _instances.get(mid) is inst:
            del _instances[mid]
        inst.close()
        raise
    return inst


def close_instances() -> None:
    for inst in list(_instances.values()):
        inst.close()
    _instances.clear()
