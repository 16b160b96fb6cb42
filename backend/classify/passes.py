from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Sequence

from classify.labels import LABEL_OFFSET_PX, place_label
from classify.visibility import contained_markers
from geo.projection import Projection
from layers.types import LatLng, Marker, PolygonFeature


@dataclass(frozen=True)
class ClassificationResult:
    visible: bool
    # None only for polygons with invalid geometry.
    anchor: LatLng | None
    marker_ids: tuple[str, ...] = ()

    def to_payload(self) -> dict:
        return {
            "visible": self.visible,
            "anchor": None
            if self.anchor is None
            else {"lat": self.anchor[0], "lng": self.anchor[1]},
            "markerIds": list(self.marker_ids),
        }


@dataclass(frozen=True)
class PassOutput:
    results: Mapping[str, ClassificationResult]
    invalid_polygon_ids: tuple[str, ...]


def run_classification_pass(
    polygons: Sequence[PolygonFeature],
    markers: Sequence[Marker],
    projection: Projection,
    *,
    label_offset_px: float = LABEL_OFFSET_PX,
) -> PassOutput:
    """
    One full pass: visibility plus label anchor for every polygon.

    Always builds a brand-new read-only mapping; nothing from an earlier pass
    is reused.
    """
    membership = contained_markers(polygons, markers)

    out: dict[str, ClassificationResult] = {}
    for pid, polygon in membership.polygons.items():
        if pid in membership.invalid:
            out[pid] = ClassificationResult(visible=False, anchor=None)
            continue
        members = membership.members[pid]
        anchor = place_label(polygon, members, projection, pixel_distance=label_offset_px)
        out[pid] = ClassificationResult(
            visible=bool(members),
            anchor=anchor,
            marker_ids=tuple(m.id for m in members),
        )

    return PassOutput(
        results=MappingProxyType(out),
        invalid_polygon_ids=tuple(membership.invalid.keys()),
    )
