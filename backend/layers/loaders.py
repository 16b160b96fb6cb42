from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Iterable

from layers.types import LatLng, Marker, PolygonFeature
from maps.types import MarkerFieldMap

logger = logging.getLogger(__name__)


def load_geojson_polygons(path: Path) -> list[PolygonFeature]:
    data = json.loads(path.read_text(encoding="utf-8"))
    return polygons_from_geojson(data)


def polygons_from_geojson(data: dict[str, Any]) -> list[PolygonFeature]:
    """
    GeoJSON FeatureCollection -> polygon features.

    MultiPolygons become one feature per part (`<id>-<n>`), with no links
    between the parts. Non-polygon geometries are ignored.
    """
    features = data.get("features") or []

    out: list[PolygonFeature] = []
    for i, feature in enumerate(features):
        geom = (feature or {}).get("geometry") or {}
        props = _string_props((feature or {}).get("properties") or {})
        gtype = geom.get("type")
        coords = geom.get("coordinates")
        if not coords:
            continue

        fid = str((feature or {}).get("id") or props.get("id") or f"poly-{i}")

        if gtype == "Polygon":
            rings = [_to_ring(r) for r in coords]
            if rings:
                out.append(PolygonFeature(id=fid, rings=rings, props=props))
        elif gtype == "MultiPolygon":
            for j, poly in enumerate(coords):
                rings = [_to_ring(r) for r in poly]
                if rings:
                    out.append(PolygonFeature(id=f"{fid}-{j}", rings=rings, props=props))
        else:
            logger.debug("Ignoring %s geometry in feature %s", gtype, fid)

    return out


def _to_ring(ring: Any) -> list[LatLng]:
    # GeoJSON positions are [lng, lat]; flip to (lat, lng) and drop the closing vertex.
    out: list[LatLng] = []
    for p in ring or []:
        if not p or len(p) < 2:
            continue
        lng, lat = float(p[0]), float(p[1])
        out.append((lat, lng))
    if len(out) > 1 and out[0] == out[-1]:
        out.pop()
    return out


def _string_props(props: dict[str, Any]) -> dict[str, str]:
    return {str(k): "" if v is None else str(v) for k, v in props.items()}


def load_marker_records(path: Path) -> list[dict[str, Any]]:
    """
    Input: a JSON list of records, or `{"records": [...]}`.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    records = data.get("records") if isinstance(data, dict) else data
    if not isinstance(records, list):
        raise ValueError(f"Marker file has no record list: {path}")
    return [r for r in records if isinstance(r, dict)]


def markers_from_records(
    records: Iterable[dict[str, Any]], fields: MarkerFieldMap
) -> list[Marker]:
    """
    Map arbitrary records to markers using the configured field names.

    Records whose coordinates do not parse as finite numbers are skipped.
    Icon and group fields are only read when configured.
    """
    out: list[Marker] = []
    for i, record in enumerate(records):
        lat = _parse_float(record.get(fields.lat))
        lng = _parse_float(record.get(fields.lng))
        if lat is None or lng is None:
            logger.debug("Skipping record %s without usable coordinates", i)
            continue

        mid = record.get(fields.id)
        out.append(
            Marker(
                id=str(mid) if mid is not None else f"marker-{i}",
                lat=lat,
                lng=lng,
                popup_text=_opt_str(record.get(fields.explain)) if fields.explain else None,
                icon_ref=_opt_str(record.get(fields.img)) if fields.uses_custom_icon else None,
                group_key=_opt_str(record.get(fields.group)) if fields.uses_grouping else None,
            )
        )
    return out


def _parse_float(v: Any) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _opt_str(v: Any) -> str | None:
    return None if v is None else str(v)
