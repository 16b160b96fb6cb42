from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class LoadState:
    """
    Readiness of the two independently loaded inputs of one map instance.

    Only the four flag combinations exist; (True, True) is the terminal "ready"
    state in which every marker replacement triggers a classification pass.
    """

    markers_ready: bool = False
    polygons_ready: bool = False

    @property
    def ready(self) -> bool:
        return self.markers_ready and self.polygons_ready

    def with_markers(self) -> "LoadState":
        return replace(self, markers_ready=True)

    def with_polygons(self) -> "LoadState":
        return replace(self, polygons_ready=True)

    def as_dict(self) -> dict[str, bool]:
        return {"markersReady": self.markers_ready, "polygonsReady": self.polygons_ready}


def opens_barrier(before: LoadState, after: LoadState) -> bool:
    """True exactly when a transition completes the two-input join."""
    return after.ready and not before.ready
