from conftest import ORIGIN, north_of
from sparehour.side_quest import (
    VERIFY_RADIUS_M,
    build_side_quest,
    is_daytime_window,
    safe_tasks,
    verify_arrival,
)
from sparehour.utils import build_window


def test_daytime_band():
    assert is_daytime_window(build_window("09:00", "11:00"))
    assert is_daytime_window(build_window("06:00", "20:00"))
    assert not is_daytime_window(build_window("19:30", "21:00"))
    assert not is_daytime_window(build_window("05:30", "07:00"))
    assert not is_daytime_window(build_window("23:00", "01:00"))


def test_ineligible_quest_has_no_tasks():
    q = build_side_quest(build_window("19:30", "21:00"), "滨江公园", "风景名胜", ORIGIN)
    assert not q.eligible
    assert q.tasks == []


def test_eligible_quest_uses_park_templates():
    q = build_side_quest(build_window("09:00", "11:00"), "滨江公园", "风景名胜;公园广场;公园", ORIGIN)
    assert q.eligible
    assert 2 <= len(q.tasks) <= 5
    assert "600 步" in q.tasks[0]
    assert q.verification_radius_meters == VERIFY_RADIUS_M == 140
    assert q.destination_location == ORIGIN


def test_task_templates_by_category():
    assert "展牌" in safe_tasks("宜昌博物馆", "科教文化服务;博物馆")[0]
    assert "店" in safe_tasks("国贸大厦", "购物服务;商场")[0]
    generic = safe_tasks("某写字楼", "商务住宅")
    assert "慢走" in generic[0]
    # short stays shorten the walk
    assert "300 步" in safe_tasks("滨江公园", "公园", play_min=15)[0]


def test_verify_at_destination():
    reached, dist = verify_arrival(ORIGIN, ORIGIN)
    assert reached
    assert dist == 0


def test_verify_just_outside_radius():
    reached, dist = verify_arrival(north_of(ORIGIN, 141), ORIGIN)
    assert not reached
    assert dist == 141


def test_verify_inside_radius():
    reached, dist = verify_arrival(north_of(ORIGIN, 100), ORIGIN)
    assert reached
    assert dist == 100
