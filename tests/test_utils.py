import asyncio

import pytest

from conftest import ORIGIN, north_of
from sparehour.domain import Candidate, LngLat, TimeWindow, TravelMode
from sparehour.utils import (
    SerialQueue,
    TTLCache,
    build_window,
    dedupe,
    haversine_meters,
    ideal_one_way_minutes,
    minutes_between,
    parse_hhmm,
    parse_lng_lat,
    suggested_radius_meters,
)


def test_minutes_between_wraps_past_midnight():
    assert minutes_between(9 * 60, 12 * 60) == 180
    assert minutes_between(23 * 60, 60) == 120
    assert minutes_between(600, 600) == 0


def test_planning_minutes_clamped_but_raw_kept():
    short = build_window("09:00", "09:10")
    assert short.available_minutes == 10
    assert short.planning_minutes == 30

    long = build_window("06:00", "22:00")
    assert long.available_minutes == 960
    assert long.planning_minutes == 600


@pytest.mark.parametrize("bad", ["9", "25:00", "12:60", "ab:cd", "", "12-30"])
def test_parse_hhmm_rejects_garbage(bad):
    with pytest.raises(ValueError):
        parse_hhmm(bad)


def test_parse_lng_lat():
    assert parse_lng_lat("111.28,30.69") == LngLat(111.28, 30.69)
    for bad in ["111.28", "200,30", "111,nan", "x,y"]:
        with pytest.raises(ValueError):
            parse_lng_lat(bad)


def test_haversine_identity_and_symmetry():
    a = ORIGIN
    b = LngLat(114.3054, 30.5931)
    assert haversine_meters(a, a) == 0
    assert haversine_meters(a, b) == haversine_meters(b, a)
    # Yichang -> Wuhan is roughly 290 km
    assert 280_000 < haversine_meters(a, b) < 300_000


def test_haversine_along_meridian():
    assert haversine_meters(ORIGIN, north_of(ORIGIN, 1000)) == pytest.approx(1000, abs=0.01)


def test_radius_monotonic_in_minutes():
    for mode in TravelMode:
        radii = [suggested_radius_meters(mode, m) for m in range(30, 601, 10)]
        assert radii == sorted(radii)


def test_radius_ordered_by_mode_speed():
    for minutes in (30, 60, 120, 240, 600):
        walk = suggested_radius_meters(TravelMode.WALK, minutes)
        bike = suggested_radius_meters(TravelMode.BIKE, minutes)
        drive = suggested_radius_meters(TravelMode.DRIVE, minutes)
        assert drive >= bike >= walk


def test_radius_bounds():
    assert suggested_radius_meters(TravelMode.WALK, 30) == 800
    assert suggested_radius_meters(TravelMode.WALK, 180) == 45 * 85
    assert suggested_radius_meters(TravelMode.DRIVE, 600) == 12000


def test_ideal_one_way():
    assert ideal_one_way_minutes(30) == 10
    assert ideal_one_way_minutes(100) == 20
    assert ideal_one_way_minutes(600) == 30


def test_dedupe_keeps_first_by_location_and_name():
    loc = north_of(ORIGIN, 500)
    a = Candidate(id=f"{loc.as_param()}::A", name="A", category="x", address="1", location=loc)
    a2 = Candidate(id=f"{loc.as_param()}::A", name="A", category="y", address="2", location=loc)
    b = Candidate(id=f"{loc.as_param()}::B", name="B", category="x", address="", location=loc)
    out = dedupe([a, b, a2])
    assert [c.name for c in out] == ["A", "B"]
    assert out[0].address == "1"


def test_ttl_cache_expires_on_read():
    now = [1000.0]
    cache = TTLCache(ttl_seconds=600, clock=lambda: now[0])
    cache.set("k", {"v": 1})
    now[0] += 599
    assert cache.get("k") == {"v": 1}
    now[0] += 2
    assert cache.get("k") is None
    assert len(cache) == 0


def test_serial_queue_runs_one_at_a_time():
    queue = SerialQueue()
    active = [0]
    peak = [0]

    async def job():
        async with queue:
            active[0] += 1
            peak[0] = max(peak[0], active[0])
            await asyncio.sleep(0.01)
            active[0] -= 1

    async def main():
        await asyncio.gather(job(), job(), job())

    asyncio.run(main())
    assert peak[0] == 1
    assert not queue.busy


def test_time_window_midnight_flag():
    assert TimeWindow(23 * 60, 60).crosses_midnight
    assert not TimeWindow(9 * 60, 11 * 60).crosses_midnight
