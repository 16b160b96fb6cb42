from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Bounds:
    """
    WGS84 axis-aligned bounds in lat/lng degrees.

    Containment is inclusive on all four edges: bounds are only a cheap reject
    before the exact ring test, so they must never reject a boundary point.
    """

    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    def normalized(self) -> "Bounds":
        return Bounds(
            min_lat=min(self.min_lat, self.max_lat),
            min_lng=min(self.min_lng, self.max_lng),
            max_lat=max(self.min_lat, self.max_lat),
            max_lng=max(self.min_lng, self.max_lng),
        )

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng

    def center(self) -> tuple[float, float]:
        return ((self.min_lat + self.max_lat) / 2.0, (self.min_lng + self.max_lng) / 2.0)

