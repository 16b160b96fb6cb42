from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from shapely.geometry import Point
from shapely.geometry import box as shapely_box
from shapely.strtree import STRtree

from geo.bounds import Bounds
from layers.types import Marker


@dataclass
class MarkerIndex:
    """
    STRtree over one marker snapshot, used as the bounds pre-filter.

    Geometries are built as (lng, lat) points (shapely x/y order).
    """

    markers: list[Marker]
    _tree: STRtree | None = field(default=None, repr=False)

    def candidates(self, bounds: Bounds) -> list[Marker]:
        """
        Markers whose position lies inside `bounds` (edges included), in snapshot order.
        """
        if self._tree is None:
            return []
        b = bounds.normalized()
        query = shapely_box(b.min_lng, b.min_lat, b.max_lng, b.max_lat)
        idxs = sorted(_to_int_list(self._tree.query(query)))
        return [self.markers[i] for i in idxs]


def build_marker_index(markers: list[Marker]) -> MarkerIndex:
    idx = MarkerIndex(markers=list(markers))
    if idx.markers:
        geoms = [Point(float(m.lng), float(m.lat)) for m in idx.markers]
        idx._tree = STRtree(geoms)
    return idx


def _to_int_list(idxs: Any) -> list[int]:
    # Shapely STRtree returns numpy.ndarray of indices.
    if idxs is None:
        return []
    try:
        return [int(i) for i in idxs.tolist()]
    except AttributeError:
        return [int(i) for i in idxs]
