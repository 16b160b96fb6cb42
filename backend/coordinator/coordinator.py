from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal, Mapping, Sequence

from classify.labels import LABEL_OFFSET_PX
from classify.passes import ClassificationResult, run_classification_pass
from coordinator.errors import (
    CoordinatorClosed,
    FeedSource,
    LoadFailure,
    PolygonsAlreadyLoaded,
)
from coordinator.state import LoadState, opens_barrier
from geo.projection import Projection
from layers.types import Marker, PolygonFeature

logger = logging.getLogger(__name__)

PassTrigger = Literal["barrier", "markers"]


@dataclass(frozen=True)
class ClassificationEvent:
    """
    Fired after every pass, once the new result has been swapped in.
    """

    pass_no: int
    trigger: PassTrigger
    results: Mapping[str, ClassificationResult]
    invalid_polygon_ids: tuple[str, ...]
    marker_count: int
    duration_ms: float

    @property
    def visible_count(self) -> int:
        return sum(1 for r in self.results.values() if r.visible)

    def to_payload(self) -> dict:
        return {
            "passNo": self.pass_no,
            "trigger": self.trigger,
            "markerCount": self.marker_count,
            "visibleCount": self.visible_count,
            "invalidPolygonIds": list(self.invalid_polygon_ids),
            "durationMs": round(self.duration_ms, 3),
            "polygons": {pid: r.to_payload() for pid, r in self.results.items()},
        }


Listener = Callable[[ClassificationEvent], None]
FailureListener = Callable[[LoadFailure], None]
Unsubscribe = Callable[[], None]


class MapCoordinator:
    """
    Joins the marker feed and the polygon feed of one map instance.

    Both inputs may arrive in either order. Nothing happens until both have
    arrived; then exactly one pass runs, and every later marker snapshot
    triggers exactly one more. Passes are synchronous and never interleave: a
    snapshot that arrives during a pass (e.g. from a listener) is classified
    right after it, and only the latest such snapshot is kept.

    Designed for a single event loop; not thread-safe.
    """

    def __init__(
        self,
        projection: Projection,
        *,
        label_offset_px: float = LABEL_OFFSET_PX,
        name: str = "map",
    ):
        self.name = name
        self._projection = projection
        self._label_offset_px = float(label_offset_px)

        self._state = LoadState()
        self._polygons: tuple[PolygonFeature, ...] = ()
        self._markers: tuple[Marker, ...] = ()

        self._last_event: ClassificationEvent | None = None
        self._pass_no = 0
        self._running = False
        self._pending: PassTrigger | None = None
        self._closed = False

        self._listeners: list[Listener] = []
        self._failure_listeners: list[FailureListener] = []
        self._close_callbacks: list[Callable[[], None]] = []

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def pass_count(self) -> int:
        return self._pass_no

    @property
    def markers(self) -> tuple[Marker, ...]:
        return self._markers

    @property
    def polygons(self) -> tuple[PolygonFeature, ...]:
        return self._polygons

    @property
    def result(self) -> Mapping[str, ClassificationResult] | None:
        """Latest classification, or None while the inputs are not both loaded."""
        return None if self._last_event is None else self._last_event.results

    @property
    def last_event(self) -> ClassificationEvent | None:
        return self._last_event

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Listener) -> Unsubscribe:
        self._listeners.append(listener)
        return lambda: _discard(self._listeners, listener)

    def on_load_failure(self, listener: FailureListener) -> Unsubscribe:
        self._failure_listeners.append(listener)
        return lambda: _discard(self._failure_listeners, listener)

    def on_close(self, callback: Callable[[], None]) -> Unsubscribe:
        self._close_callbacks.append(callback)
        return lambda: _discard(self._close_callbacks, callback)

    def set_polygons(self, polygons: Sequence[PolygonFeature]) -> None:
        self._ensure_open()
        if self._state.polygons_ready:
            raise PolygonsAlreadyLoaded(
                f"Map '{self.name}' already has polygons; build a new instance to reload"
            )
        self._polygons = tuple(polygons)
        before = self._state
        self._state = before.with_polygons()
        logger.info("Map '%s': %d polygons loaded", self.name, len(self._polygons))
        if opens_barrier(before, self._state):
            self._request_pass("barrier")

    def set_markers(self, markers: Sequence[Marker]) -> None:
        """
        Replace the marker snapshot (last write wins).
        """
        self._ensure_open()
        self._markers = tuple(markers)
        before = self._state
        self._state = before.with_markers()
        logger.debug("Map '%s': marker snapshot of %d", self.name, len(self._markers))
        if opens_barrier(before, self._state):
            self._request_pass("barrier")
        elif self._state.ready:
            self._request_pass("markers")

    async def load_polygons(
        self, loader: Callable[[], Awaitable[Sequence[PolygonFeature]]]
    ) -> None:
        try:
            polygons = await loader()
        except Exception as exc:
            raise self.report_load_failure("polygons", exc) from exc
        self.set_polygons(polygons)

    async def load_markers(self, loader: Callable[[], Awaitable[Sequence[Marker]]]) -> None:
        try:
            markers = await loader()
        except Exception as exc:
            raise self.report_load_failure("markers", exc) from exc
        self.set_markers(markers)

    def report_load_failure(self, source: FeedSource, cause: BaseException) -> LoadFailure:
        """
        Surface a feed failure to the failure listeners. Flags stay as they are.
        """
        failure = cause if isinstance(cause, LoadFailure) else LoadFailure(source, cause)
        logger.error("Map '%s': %s", self.name, failure)
        for listener in list(self._failure_listeners):
            try:
                listener(failure)
            except Exception:
                logger.exception("Map '%s': load-failure listener raised", self.name)
        return failure

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        callbacks = list(self._close_callbacks)
        self._listeners.clear()
        self._failure_listeners.clear()
        self._close_callbacks.clear()
        for cb in callbacks:
            cb()
        logger.info("Map '%s': closed after %d passes", self.name, self._pass_no)

    def _ensure_open(self) -> None:
        if self._closed:
            raise CoordinatorClosed(f"Map '{self.name}' is closed")

    def _request_pass(self, trigger: PassTrigger) -> None:
        if self._running:
            # Coalesce: the loop below picks up the newest snapshot.
            self._pending = trigger
            return

        self._running = True
        try:
            next_trigger: PassTrigger | None = trigger
            while next_trigger is not None and not self._closed:
                self._pending = None
                self._run_pass(next_trigger)
                next_trigger = self._pending
        finally:
            self._running = False
            self._pending = None

    def _run_pass(self, trigger: PassTrigger) -> None:
        t0 = time.perf_counter()
        out = run_classification_pass(
            self._polygons,
            self._markers,
            self._projection,
            label_offset_px=self._label_offset_px,
        )
        self._pass_no += 1
        event = ClassificationEvent(
            pass_no=self._pass_no,
            trigger=trigger,
            results=out.results,
            invalid_polygon_ids=out.invalid_polygon_ids,
            marker_count=len(self._markers),
            duration_ms=(time.perf_counter() - t0) * 1000.0,
        )
        # Single reference swap: readers see the old or the new result, never a mix.
        self._last_event = event
        logger.info(
            "Map '%s': pass %d (%s) -> %d/%d visible, %d markers",
            self.name,
            event.pass_no,
            trigger,
            event.visible_count,
            len(event.results),
            event.marker_count,
        )

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Map '%s': classification listener raised", self.name)


def _discard(items: list, item) -> None:
    try:
        items.remove(item)
    except ValueError:
        pass
