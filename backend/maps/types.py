from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class MapCenter(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class MapDefaultView(BaseModel):
    center: MapCenter
    zoom: float = Field(ge=0.0, le=24.0)


PolygonSourceType = Literal["geojson_polygons"]


class MapPolygonSource(BaseModel):
    type: PolygonSourceType = "geojson_polygons"
    path: str


class MarkerFieldMap(BaseModel):
    """
    Record field names that hold each marker attribute.

    Icons and groups are optional: an unset (or one-character) field name
    turns the feature off.
    """

    id: str = "Id"
    lat: str
    lng: str
    explain: str | None = None
    img: str | None = None
    group: str | None = None

    @property
    def uses_custom_icon(self) -> bool:
        return bool(self.img) and len(self.img or "") > 1

    @property
    def uses_grouping(self) -> bool:
        return bool(self.group) and len(self.group or "") > 1


class MapMarkerSource(BaseModel):
    # Optional seed file; live updates come through the marker feed endpoint.
    path: str | None = None
    fields: MarkerFieldMap


class MapLabels(BaseModel):
    offsetPx: float = Field(default=20.0, ge=0.0, le=500.0)
    # Zoom the label offset is computed at; defaults to defaultView.zoom.
    zoom: float | None = Field(default=None, ge=0.0, le=24.0)


class MapConfig(BaseModel):
    id: str
    title: str
    enabled: bool = True
    defaultView: MapDefaultView
    polygons: MapPolygonSource
    markers: MapMarkerSource
    labels: MapLabels = Field(default_factory=MapLabels)

    @property
    def label_zoom(self) -> float:
        return self.labels.zoom if self.labels.zoom is not None else self.defaultView.zoom
