from __future__ import annotations

from layers.types import LatLng, Marker, PolygonFeature


class FlatProjection:
    """
    Screen x = lng, screen y = -lat (1 px per degree), y growing southward.
    """

    def to_screen(self, lat: float, lng: float) -> tuple[float, float]:
        return (lng, -lat)

    def to_geo(self, x: float, y: float) -> LatLng:
        return (-y, x)


def square(pid: str, lat0: float, lng0: float, size: float) -> PolygonFeature:
    ring = [
        (lat0, lng0),
        (lat0, lng0 + size),
        (lat0 + size, lng0 + size),
        (lat0 + size, lng0),
    ]
    return PolygonFeature(id=pid, rings=[ring], props={})


def marker(mid: str, lat: float, lng: float) -> Marker:
    return Marker(id=mid, lat=lat, lng=lng)
