from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol

from pyproj import Transformer

from layers.types import LatLng

_EARTH_RADIUS_M = 6378137.0
_WORLD_CIRCUMFERENCE_M = 2.0 * math.pi * _EARTH_RADIUS_M


class Projection(Protocol):
    """
    Forward/inverse projection between geographic and screen space.

    Supplied by the hosting map widget; the core never renders anything itself.
    Screen y grows downward.
    """

    def to_screen(self, lat: float, lng: float) -> tuple[float, float]: ...

    def to_geo(self, x: float, y: float) -> LatLng: ...


@lru_cache(maxsize=1)
def transformer_4326_to_3857() -> Transformer:
    return Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)


@lru_cache(maxsize=1)
def transformer_3857_to_4326() -> Transformer:
    return Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True)


@dataclass(frozen=True)
class WebMercatorProjection:
    """
    Slippy-map pixel space at a given zoom (256px tiles, origin top-left).

    Matches what Leaflet's `latLngToLayerPoint` returns up to a translation,
    which is all the label offset needs.
    """

    zoom: float
    tile_size: int = 256

    @property
    def world_px(self) -> float:
        return float(self.tile_size) * (2.0 ** float(self.zoom))

    def to_screen(self, lat: float, lng: float) -> tuple[float, float]:
        x_m, y_m = transformer_4326_to_3857().transform(lng, lat)
        scale = self.world_px / _WORLD_CIRCUMFERENCE_M
        px = (x_m + _WORLD_CIRCUMFERENCE_M / 2.0) * scale
        py = (_WORLD_CIRCUMFERENCE_M / 2.0 - y_m) * scale
        return float(px), float(py)

    def to_geo(self, x: float, y: float) -> LatLng:
        scale = _WORLD_CIRCUMFERENCE_M / self.world_px
        x_m = x * scale - _WORLD_CIRCUMFERENCE_M / 2.0
        y_m = _WORLD_CIRCUMFERENCE_M / 2.0 - y * scale
        lng, lat = transformer_3857_to_4326().transform(x_m, y_m)
        return float(lat), float(lng)
