from __future__ import annotations

import math

from geo.bounds import Bounds
from layers.types import LatLng, Marker

FIT_BOUNDS_PADDING_PX = 20
MIN_ZOOM = 2.0
MAX_ZOOM = 18.0
_MAX_MERCATOR_LAT = 85.05112878


def fit_view_to_markers(
    markers: list[Marker],
    *,
    width: int = 900,
    height: int = 600,
    padding_px: int = FIT_BOUNDS_PADDING_PX,
) -> tuple[LatLng, float] | None:
    """
    Center and zoom that fit all markers into a `width` x `height` viewport.

    Returns None for an empty marker set (nothing to fit; keep the default view).
    """
    if not markers:
        return None

    bounds = Bounds(
        min_lat=min(m.lat for m in markers),
        min_lng=min(m.lng for m in markers),
        max_lat=max(m.lat for m in markers),
        max_lng=max(m.lng for m in markers),
    )
    inner_w = max(1, int(width) - 2 * int(padding_px))
    inner_h = max(1, int(height) - 2 * int(padding_px))
    zoom = bounds_to_zoom(bounds, width=inner_w, height=inner_h)
    return bounds.center(), max(MIN_ZOOM, min(MAX_ZOOM, zoom))


def bounds_to_zoom(bounds: Bounds, *, width: int, height: int) -> float:
    # WebMercator bounds -> zoom heuristic.
    def lat_to_rad(lat: float) -> float:
        lat = max(-_MAX_MERCATOR_LAT, min(_MAX_MERCATOR_LAT, lat))
        s = math.sin(lat * math.pi / 180.0)
        return math.log((1 + s) / (1 - s)) / 2.0

    b = bounds.normalized()
    lng_delta = b.max_lng - b.min_lng
    lat_delta = (lat_to_rad(b.max_lat) - lat_to_rad(b.min_lat)) * 180.0 / math.pi

    # avoid division by zero (single marker)
    lng_delta = max(lng_delta, 1e-6)
    lat_delta = max(lat_delta, 1e-6)

    # 256px tiles
    zoom_x = math.log2((width * 360.0) / (256.0 * lng_delta))
    zoom_y = math.log2((height * 360.0) / (256.0 * lat_delta))
    return float(min(zoom_x, zoom_y))
