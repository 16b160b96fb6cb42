from __future__ import annotations

import asyncio

import pytest

from coordinator import (
    ClassificationEvent,
    ClassificationStream,
    CoordinatorClosed,
    LoadFailure,
    LoadState,
    MapCoordinator,
    PolygonsAlreadyLoaded,
)
from helpers import FlatProjection, marker, square

POLYGONS = [square("p", 0.0, 0.0, 10.0), square("q", 20.0, 20.0, 10.0)]


def _coordinator() -> tuple[MapCoordinator, list[ClassificationEvent]]:
    coord = MapCoordinator(FlatProjection(), label_offset_px=1.0, name="test")
    events: list[ClassificationEvent] = []
    coord.subscribe(events.append)
    return coord, events


def _visible(event: ClassificationEvent) -> dict[str, bool]:
    return {pid: r.visible for pid, r in event.results.items()}


def test_polygons_first_then_markers_runs_one_pass():
    coord, events = _coordinator()

    coord.set_polygons(POLYGONS)
    assert coord.state == LoadState(markers_ready=False, polygons_ready=True)
    assert events == []
    assert coord.result is None

    coord.set_markers([marker("m", 5.0, 5.0)])
    assert coord.state.ready
    assert len(events) == 1
    assert events[0].trigger == "barrier"
    assert _visible(events[0]) == {"p": True, "q": False}
    assert coord.result is events[0].results


def test_markers_first_then_polygons_runs_one_pass():
    coord, events = _coordinator()

    coord.set_markers([marker("m", 25.0, 25.0)])
    assert coord.state == LoadState(markers_ready=True, polygons_ready=False)
    assert events == []

    coord.set_polygons(POLYGONS)
    assert len(events) == 1
    assert _visible(events[0]) == {"p": False, "q": True}


def test_marker_update_after_ready_runs_exactly_one_more_pass():
    coord, events = _coordinator()
    coord.set_polygons(POLYGONS)
    coord.set_markers([marker("m", 5.0, 5.0)])
    first = coord.result

    coord.set_markers([marker("m", 25.0, 25.0)])
    assert [e.pass_no for e in events] == [1, 2]
    assert events[1].trigger == "markers"
    assert _visible(events[1]) == {"p": False, "q": True}
    # The earlier mapping is untouched; results are swapped, not patched.
    assert first is not None and first["p"].visible is True


def test_only_latest_marker_snapshot_counts_before_barrier():
    coord, events = _coordinator()
    coord.set_markers([marker("a", 5.0, 5.0)])
    coord.set_markers([marker("b", 25.0, 25.0)])
    coord.set_polygons(POLYGONS)

    assert len(events) == 1
    assert events[0].results["q"].marker_ids == ("b",)
    assert events[0].results["p"].visible is False


def test_empty_marker_snapshot_is_valid_and_hides_all():
    coord, events = _coordinator()
    coord.set_polygons(POLYGONS)
    coord.set_markers([])
    assert len(events) == 1
    assert _visible(events[0]) == {"p": False, "q": False}


def test_results_are_read_only():
    coord, _ = _coordinator()
    coord.set_polygons(POLYGONS)
    coord.set_markers([])
    with pytest.raises(TypeError):
        coord.result["p"] = None  # type: ignore[index]


def test_polygons_load_once():
    coord, _ = _coordinator()
    coord.set_polygons(POLYGONS)
    with pytest.raises(PolygonsAlreadyLoaded):
        coord.set_polygons(POLYGONS)


def test_async_loads_join_in_either_order():
    async def run(polygon_delay: float, marker_delay: float) -> list[ClassificationEvent]:
        coord, events = _coordinator()

        async def polygons():
            await asyncio.sleep(polygon_delay)
            return POLYGONS

        async def markers():
            await asyncio.sleep(marker_delay)
            return [marker("m", 5.0, 5.0)]

        await asyncio.gather(coord.load_polygons(polygons), coord.load_markers(markers))
        return events

    for delays in [(0.0, 0.02), (0.02, 0.0)]:
        events = asyncio.run(run(*delays))
        assert len(events) == 1
        assert _visible(events[0]) == {"p": True, "q": False}


def test_load_failure_is_surfaced_and_flags_stay():
    coord, events = _coordinator()
    failures: list[LoadFailure] = []
    coord.on_load_failure(failures.append)
    coord.set_markers([marker("m", 5.0, 5.0)])

    async def broken():
        raise OSError("disk gone")

    with pytest.raises(LoadFailure) as err:
        asyncio.run(coord.load_polygons(broken))

    assert err.value.source == "polygons"
    assert isinstance(err.value.__cause__, OSError)
    assert failures == [err.value]
    assert coord.state == LoadState(markers_ready=True, polygons_ready=False)
    assert events == []
    assert coord.result is None


def test_update_from_listener_is_coalesced_not_nested():
    coord = MapCoordinator(FlatProjection(), label_offset_px=1.0)
    depth = {"now": 0, "max": 0}
    seen: list[int] = []

    def listener(event: ClassificationEvent) -> None:
        depth["now"] += 1
        depth["max"] = max(depth["max"], depth["now"])
        seen.append(event.pass_no)
        if event.pass_no == 1:
            coord.set_markers([marker("x", 25.0, 25.0)])
            coord.set_markers([marker("y", 26.0, 26.0)])
        depth["now"] -= 1

    coord.subscribe(listener)
    coord.set_polygons(POLYGONS)
    coord.set_markers([marker("m", 5.0, 5.0)])

    assert seen == [1, 2]
    assert depth["max"] == 1
    assert coord.result is not None
    assert coord.result["q"].marker_ids == ("y",)


def test_failing_listener_does_not_block_others():
    coord, events = _coordinator()

    def boom(_event):
        raise RuntimeError("renderer crashed")

    coord.subscribe(boom)
    late: list[ClassificationEvent] = []
    coord.subscribe(late.append)
    coord.set_polygons(POLYGONS)
    coord.set_markers([])
    assert len(events) == 1
    assert len(late) == 1


def test_unsubscribe_and_close():
    coord, events = _coordinator()
    extra: list[ClassificationEvent] = []
    unsubscribe = coord.subscribe(extra.append)
    coord.set_polygons(POLYGONS)
    coord.set_markers([])
    unsubscribe()
    coord.set_markers([marker("m", 5.0, 5.0)])
    assert len(extra) == 1
    assert len(events) == 2

    coord.close()
    with pytest.raises(CoordinatorClosed):
        coord.set_markers([])


def test_stream_yields_current_and_new_events_until_close():
    async def run() -> list[int]:
        coord, _ = _coordinator()
        coord.set_polygons(POLYGONS)
        coord.set_markers([])

        seen: list[int] = []
        stream = ClassificationStream(coord)

        async def consume():
            async for item in stream:
                seen.append(item.pass_no)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        coord.set_markers([marker("m", 5.0, 5.0)])
        await asyncio.sleep(0)
        coord.close()
        await asyncio.wait_for(task, timeout=1.0)
        return seen

    assert asyncio.run(run()) == [1, 2]


def test_stream_reports_load_failures():
    async def run():
        coord, _ = _coordinator()
        stream = ClassificationStream(coord)

        async def broken():
            raise ValueError("bad payload")

        with pytest.raises(LoadFailure):
            await coord.load_markers(broken)
        item = await asyncio.wait_for(stream.__anext__(), timeout=1.0)
        stream.close()
        return item

    item = asyncio.run(run())
    assert isinstance(item, LoadFailure)
    assert item.source == "markers"
