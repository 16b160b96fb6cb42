from __future__ import annotations

import asyncio
import logging

import pytest

from coordinator import LoadFailure
from engine import instances
from engine.instances import build_instance, get_instance
from maps.registry import clear_registry_cache, get_map
from telemetry.settings import RuntimeSettings
from telemetry.store import get_store, reset_store

DEMO = "school_districts"


def test_concurrent_callers_share_one_start(monkeypatch):
    calls: list[str] = []
    real_loader = instances.load_geojson_polygons

    def counting_loader(path):
        calls.append(str(path))
        return real_loader(path)

    monkeypatch.setattr(instances, "load_geojson_polygons", counting_loader)

    async def run():
        return await asyncio.gather(get_instance(DEMO), get_instance(DEMO))

    first, second = asyncio.run(run())
    assert first is second
    assert len(calls) == 1
    assert first.coordinator.state.ready
    assert first.coordinator.pass_count == 1


def test_concurrent_callers_all_see_failure_and_instance_is_dropped(tmp_path, monkeypatch):
    (tmp_path / "broken").mkdir()
    (tmp_path / "broken" / "map.yaml").write_text(
        "id: broken\ntitle: B\n"
        "defaultView: {center: {lat: 0.0, lng: 0.0}, zoom: 10}\n"
        "polygons: {path: data/missing/polygons.geojson}\n"
        "markers: {fields: {lat: Lat, lng: Lng}}\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("MARKERMAP_MAPS_DIR", str(tmp_path))
    clear_registry_cache()

    async def run():
        return await asyncio.gather(
            get_instance("broken"), get_instance("broken"), return_exceptions=True
        )

    outcomes = asyncio.run(run())
    assert all(isinstance(o, LoadFailure) for o in outcomes)
    assert all(o.source == "polygons" for o in outcomes)
    assert "broken" not in instances._instances


def test_passes_go_to_the_store_given_at_build(tmp_path, monkeypatch):
    monkeypatch.setenv("MARKERMAP_TELEMETRY", "1")
    monkeypatch.setenv("MARKERMAP_TELEMETRY_PATH", str(tmp_path / "passes.duckdb"))
    store = get_store()
    assert store is not None

    inst = build_instance(get_map(DEMO).config, store=store)
    asyncio.run(inst.start())
    inst.replace_markers([])
    store.flush(timeout_s=2.0)

    rows = store.query("select pass_no, trigger, visible_count from passes order by pass_no")
    assert rows == [(1, "barrier", 2), (2, "markers", 0)]
    reset_store()


def test_instance_without_store_still_classifies():
    inst = build_instance(get_map(DEMO).config)
    asyncio.run(inst.start())
    assert inst.coordinator.pass_count == 1
    assert inst.coordinator.result is not None


def test_runtime_settings_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("MARKERMAP_TELEMETRY", "off")
    monkeypatch.setenv("MARKERMAP_TELEMETRY_PATH", str(tmp_path / "x.duckdb"))
    monkeypatch.setenv("MARKERMAP_LOG_LEVEL", "debug")
    cfg = RuntimeSettings.from_env()
    assert cfg.record_passes is False
    assert cfg.pass_log_path == tmp_path / "x.duckdb"
    assert cfg.log_level == logging.DEBUG

    monkeypatch.setenv("MARKERMAP_LOG_LEVEL", "chatty")
    assert RuntimeSettings.from_env().log_level == logging.INFO


@pytest.mark.parametrize("flag", ["0", "false", "no", "OFF"])
def test_pass_recording_switch(flag, monkeypatch):
    monkeypatch.setenv("MARKERMAP_TELEMETRY", flag)
    assert get_store() is None
