from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence, TypeAlias


# Convention used throughout this repo: (lat, lng) in WGS84 degrees.
LatLng: TypeAlias = tuple[float, float]
Ring: TypeAlias = Sequence[LatLng]


@dataclass(frozen=True)
class Marker:
    """
    A point marker shown on the map.

    Markers are replaced wholesale on every feed update; nothing mutates them.
    """

    id: str
    lat: float
    lng: float
    popup_text: str | None = None
    icon_ref: str | None = None
    group_key: str | None = None

    @property
    def position(self) -> LatLng:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class PolygonFeature:
    id: str
    rings: list[list[LatLng]]  # [outer_ring, *holes]
    props: dict[str, str] = field(default_factory=dict)

    @property
    def outer(self) -> list[LatLng]:
        return self.rings[0] if self.rings else []

    @property
    def holes(self) -> list[list[LatLng]]:
        return self.rings[1:]

    def popup_text(self) -> str:
        # One "key: value" line per property, same as the district popups.
        return "<br />".join(f"{k}: {v}" for k, v in self.props.items())
