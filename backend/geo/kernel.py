from __future__ import annotations

import math
from typing import Callable, Sequence

from geo.bounds import Bounds
from layers.types import LatLng, PolygonFeature, Ring

ScreenPoint = tuple[float, float]
ToScreen = Callable[[float, float], ScreenPoint]
ToGeo = Callable[[float, float], LatLng]


class InvalidGeometry(ValueError):
    """
    A polygon that cannot be classified (no outer ring, or a ring with < 3 vertices).
    """

    def __init__(self, polygon_id: str, reason: str):
        super().__init__(f"Invalid geometry for polygon '{polygon_id}': {reason}")
        self.polygon_id = polygon_id
        self.reason = reason


def ring_vertices(ring: Ring) -> list[LatLng]:
    # GeoJSON-style rings repeat the first vertex at the end; drop it.
    pts = [(float(lat), float(lng)) for lat, lng in ring]
    if len(pts) > 1 and pts[0] == pts[-1]:
        pts.pop()
    return pts


def point_in_ring(point: LatLng, ring: Ring) -> bool:
    """
    Even-odd ray casting (y = lat, x = lng), ray pointing east.

    Both comparisons are strict, so horizontal edges never count and a shared
    vertex is counted once. On an axis-aligned ring this makes the min-lat and
    min-lng edges inclusive and the max-lat and max-lng edges exclusive.
    """
    pts = ring_vertices(ring)
    if len(pts) < 3:
        return False

    y, x = point
    inside = False
    j = len(pts) - 1
    for i in range(len(pts)):
        yi, xi = pts[i]
        yj, xj = pts[j]
        if (yi > y) != (yj > y):
            x_cross = xi + (y - yi) * (xj - xi) / (yj - yi)
            if x_cross > x:
                inside = not inside
        j = i
    return inside


def point_in_polygon(point: LatLng, polygon: PolygonFeature) -> bool:
    if not polygon.rings:
        return False
    if not point_in_ring(point, polygon.outer):
        return False
    return not any(point_in_ring(point, hole) for hole in polygon.holes)


def bounds_of(shape: Ring | PolygonFeature) -> Bounds:
    # Holes lie inside the outer ring, so the outer ring alone is enough.
    ring = shape.outer if isinstance(shape, PolygonFeature) else shape
    pts = list(ring)
    if not pts:
        polygon_id = shape.id if isinstance(shape, PolygonFeature) else "<ring>"
        raise InvalidGeometry(polygon_id, "no vertices")
    lats = [float(p[0]) for p in pts]
    lngs = [float(p[1]) for p in pts]
    return Bounds(min_lat=min(lats), min_lng=min(lngs), max_lat=max(lats), max_lng=max(lngs))


def centroid(ring: Ring) -> LatLng:
    """
    Arithmetic mean of the ring's vertices.

    Not area-weighted: good enough to anchor a label, and it may fall outside
    strongly concave rings (callers check containment).
    """
    pts = ring_vertices(ring)
    if not pts:
        raise ValueError("centroid of an empty ring")
    return mean_point(pts)


def mean_point(points: Sequence[LatLng]) -> LatLng:
    n = len(points)
    return (sum(p[0] for p in points) / n, sum(p[1] for p in points) / n)


def offset_away_from(
    center: LatLng,
    cluster_average: LatLng,
    pixel_distance: float,
    to_screen: ToScreen,
    to_geo: ToGeo,
) -> LatLng:
    """
    Move `center` by `pixel_distance` screen pixels, directly away from `cluster_average`.

    Screen y grows downward, so the fallback vector (0, -d) points north. It is
    used when the cluster sits exactly on the center.
    """
    cx, cy = to_screen(*center)
    ax, ay = to_screen(*cluster_average)
    dx = cx - ax
    dy = cy - ay
    length = math.hypot(dx, dy)
    if length == 0.0:
        vx, vy = 0.0, -float(pixel_distance)
    else:
        vx = dx / length * pixel_distance
        vy = dy / length * pixel_distance
    return to_geo(cx + vx, cy + vy)


def validate_polygon(polygon: PolygonFeature) -> None:
    if not polygon.rings or not polygon.outer:
        raise InvalidGeometry(polygon.id, "missing outer ring")
    for idx, ring in enumerate(polygon.rings):
        distinct = set(ring_vertices(ring))
        if len(distinct) < 3:
            kind = "outer ring" if idx == 0 else f"hole {idx}"
            raise InvalidGeometry(
                polygon.id, f"{kind} has {len(distinct)} distinct vertices (need 3)"
            )
