from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, model_validator

from api.stream import stream_events
from coordinator.errors import CoordinatorClosed, LoadFailure
from coordinator.stream import ClassificationStream
from engine.instances import MapInstance, close_instances, get_instance
from geo.view import fit_view_to_markers
from layers.types import Marker
from maps.registry import list_maps
from telemetry.log import configure_logging
from telemetry.store import get_store


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()
    # Open the pass log before any request so passes never wait on duckdb.connect.
    store = await asyncio.to_thread(get_store)
    yield
    close_instances()
    if store is not None:
        store.stop()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ApiMarker(BaseModel):
    id: str
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)
    popupText: str | None = None
    iconRef: str | None = None
    groupKey: str | None = None

    def to_marker(self) -> Marker:
        return Marker(
            id=self.id,
            lat=self.lat,
            lng=self.lng,
            popup_text=self.popupText,
            icon_ref=self.iconRef,
            group_key=self.groupKey,
        )


class ApiMarkerFeed(BaseModel):
    """
    A full marker snapshot: either ready-made markers or raw records mapped
    through the map's configured field names.
    """

    markers: list[ApiMarker] | None = None
    records: list[dict[str, Any]] | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "ApiMarkerFeed":
        if (self.markers is None) == (self.records is None):
            raise ValueError("Provide exactly one of `markers` or `records`")
        return self


async def _instance(map_id: str) -> MapInstance:
    try:
        return await get_instance(map_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown map: {map_id}")
    except LoadFailure as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/maps")
def get_maps():
    return [
        {
            "id": cfg.id,
            "title": cfg.title,
            "defaultView": cfg.defaultView.model_dump(),
        }
        for cfg in list_maps()
    ]


@app.get("/maps/{map_id}/classification")
async def get_classification(map_id: str):
    inst = await _instance(map_id)
    event = inst.coordinator.last_event
    return {
        "mapId": inst.id,
        "state": inst.coordinator.state.as_dict(),
        "classification": None if event is None else event.to_payload(),
    }


@app.put("/maps/{map_id}/markers")
async def put_markers(map_id: str, body: ApiMarkerFeed):
    inst = await _instance(map_id)
    try:
        if body.markers is not None:
            markers = [m.to_marker() for m in body.markers]
            inst.replace_markers(markers)
        else:
            markers = inst.replace_marker_records(body.records or [])
    except CoordinatorClosed as e:
        raise HTTPException(status_code=409, detail=str(e))

    event = inst.coordinator.last_event
    return {
        "mapId": inst.id,
        "accepted": len(markers),
        "state": inst.coordinator.state.as_dict(),
        "passNo": None if event is None else event.pass_no,
    }


@app.get("/maps/{map_id}/stream")
async def get_stream(map_id: str):
    inst = await _instance(map_id)
    stream = ClassificationStream(inst.coordinator)
    return StreamingResponse(stream_events(stream), media_type="text/event-stream")


@app.get("/maps/{map_id}/view")
async def get_view(map_id: str, width: int = 900, height: int = 600):
    inst = await _instance(map_id)
    fitted = fit_view_to_markers(list(inst.coordinator.markers), width=width, height=height)
    if fitted is None:
        view = inst.config.defaultView
        return {"center": view.center.model_dump(), "zoom": view.zoom, "fitted": False}
    (lat, lng), zoom = fitted
    return {"center": {"lat": lat, "lng": lng}, "zoom": zoom, "fitted": True}


@app.get("/telemetry/summary")
def telemetry_summary(map_id: str | None = None):
    store = get_store()
    if store is None:
        return {"enabled": False, "rows": []}
    return {"enabled": True, "rows": store.summary(map_id=map_id)}
