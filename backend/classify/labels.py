from __future__ import annotations

import logging
from typing import Sequence

from shapely.geometry import Polygon

from geo.kernel import centroid, mean_point, offset_away_from, point_in_polygon, ring_vertices
from geo.projection import Projection
from layers.types import LatLng, Marker, PolygonFeature

logger = logging.getLogger(__name__)

LABEL_OFFSET_PX = 20.0


def place_label(
    polygon: PolygonFeature,
    contained: Sequence[Marker],
    projection: Projection,
    *,
    pixel_distance: float = LABEL_OFFSET_PX,
) -> LatLng:
    """
    Label anchor for `polygon`, nudged away from the markers it contains.

    Candidates, in order:
    1. the centroid pushed `pixel_distance` px away from the marker cluster
       (or straight up when the polygon has no markers),
    2. the centroid itself,
    3. a shapely representative point, for concave shapes whose centroid
       falls outside.
    The first candidate inside the polygon wins.
    """
    bounds_center = centroid(polygon.outer)

    if contained:
        cluster_average = mean_point([m.position for m in contained])
        candidate = offset_away_from(
            bounds_center,
            cluster_average,
            pixel_distance,
            projection.to_screen,
            projection.to_geo,
        )
    else:
        x, y = projection.to_screen(*bounds_center)
        candidate = projection.to_geo(x, y - pixel_distance)

    if point_in_polygon(candidate, polygon):
        return candidate
    if point_in_polygon(bounds_center, polygon):
        return bounds_center

    fallback = _representative_point(polygon)
    if fallback is None:
        logger.debug("No interior anchor for polygon '%s'; using centroid", polygon.id)
        return bounds_center
    return fallback


def _representative_point(polygon: PolygonFeature) -> LatLng | None:
    shell = [(lng, lat) for lat, lng in ring_vertices(polygon.outer)]
    holes = [[(lng, lat) for lat, lng in ring_vertices(h)] for h in polygon.holes]
    geom = Polygon(shell, holes=holes or None)
    if not geom.is_valid:
        geom = geom.buffer(0)
    if geom.is_empty:
        return None
    p = geom.representative_point()
    return float(p.y), float(p.x)
