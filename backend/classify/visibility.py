from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from geo.index import MarkerIndex, build_marker_index
from geo.kernel import InvalidGeometry, bounds_of, point_in_polygon, validate_polygon
from layers.types import Marker, PolygonFeature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Membership:
    """
    Which markers each polygon contains, for one (polygons, markers) pair.

    Polygon ids are keys: when an id repeats, the last polygon with that id
    wins in `polygons`, `members` and `invalid` alike. Invalid polygons have an
    empty member list.
    """

    polygons: dict[str, PolygonFeature]
    members: dict[str, list[Marker]]
    invalid: dict[str, InvalidGeometry] = field(default_factory=dict)


def contained_markers(
    polygons: Iterable[PolygonFeature],
    markers: Iterable[Marker],
    *,
    index: MarkerIndex | None = None,
) -> Membership:
    """
    Bounds pre-filter (STRtree over markers), then the exact ring test.

    Output order follows first appearance of each polygon id; members follow
    marker order.
    """
    idx = index if index is not None else build_marker_index(list(markers))
    winners: dict[str, PolygonFeature] = {}
    members: dict[str, list[Marker]] = {}
    invalid: dict[str, InvalidGeometry] = {}

    for polygon in polygons:
        if polygon.id in winners:
            logger.warning("Duplicate polygon id '%s'; last one wins", polygon.id)
        winners[polygon.id] = polygon

        try:
            validate_polygon(polygon)
        except InvalidGeometry as err:
            logger.warning("Skipping polygon: %s", err)
            invalid[polygon.id] = err
            members[polygon.id] = []
            continue

        invalid.pop(polygon.id, None)
        candidates = idx.candidates(bounds_of(polygon))
        members[polygon.id] = [m for m in candidates if point_in_polygon(m.position, polygon)]

    return Membership(polygons=winners, members=members, invalid=invalid)


def classify(
    polygons: Iterable[PolygonFeature], markers: Iterable[Marker]
) -> dict[str, bool]:
    """
    Polygon id -> visible. A polygon is visible iff it contains at least one marker.

    No markers means every polygon is hidden. Invalid polygons are hidden too.
    """
    membership = contained_markers(polygons, markers)
    return {pid: bool(found) for pid, found in membership.members.items()}
