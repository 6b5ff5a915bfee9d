import pytest

from clubhouse.services.time_grid import TimeGrid, minutes_to_time, time_to_minutes
from tests.helpers import FRI, SAT, SUN, THU, WED, FixedClock, local


def test_time_to_minutes_moves_small_hours_to_the_next_day():
    assert time_to_minutes("18:00") == 1080
    assert time_to_minutes("23:30") == 1410
    assert time_to_minutes("00:00") == 1440
    assert time_to_minutes("01:30") == 1530


@pytest.mark.parametrize("value", ["", "7pm", "24:00", "20:60", "20:5", "ab:cd"])
def test_time_to_minutes_rejects_malformed_values(value):
    with pytest.raises(ValueError):
        time_to_minutes(value)


def test_minutes_to_time_wraps_past_midnight():
    assert minutes_to_time(1230) == "20:30"
    assert minutes_to_time(1500) == "01:00"


def test_weekday_grid_runs_from_opening_to_last_point_before_close(clock):
    grid = TimeGrid(clock)
    points = grid.grid_points(THU)
    assert points[0] == 18 * 60
    assert points[-1] == time_to_minutes("01:30")
    assert len(points) == 16
    assert all(b - a == 30 for a, b in zip(points, points[1:]))


def test_weekend_grid_opens_at_noon(clock):
    grid = TimeGrid(clock)
    assert grid.grid_points(SAT)[0] == 12 * 60
    assert grid.grid_points(SUN)[0] == 12 * 60


def test_selectable_starts_stop_at_half_past_eleven(clock):
    grid = TimeGrid(clock)
    starts = grid.selectable_starts(THU)
    assert starts[-1] == time_to_minutes("23:30")
    assert time_to_minutes("00:00") not in starts
    assert time_to_minutes("00:00") in grid.grid_points(THU)


def test_is_past_compares_in_resource_timezone(clock):
    grid = TimeGrid(clock)
    assert grid.is_past(WED, time_to_minutes("09:30"))
    assert not grid.is_past(WED, time_to_minutes("18:00"))
    assert not grid.is_past(THU, time_to_minutes("18:00"))


def test_today_uses_resource_timezone_not_utc():
    # 02:00 UTC on Thursday is still Wednesday evening in New York
    clock = FixedClock(local(WED, 22))
    grid = TimeGrid(clock)
    assert clock.now().astimezone(grid.tz).date() == WED
    assert grid.today() == WED


def test_after_midnight_points_belong_to_the_next_calendar_day():
    grid = TimeGrid(FixedClock(local(WED, 23, 45)))
    assert grid.is_past(WED, time_to_minutes("23:00"))
    assert not grid.is_past(WED, time_to_minutes("00:30"))
    assert grid.point_datetime(WED, time_to_minutes("00:30")) == local(THU, 0, 30)


def test_priority_window_is_friday_to_sunday_evening(clock):
    grid = TimeGrid(clock)
    assert grid.is_priority_window(time_to_minutes("20:00"), FRI)
    assert grid.is_priority_window(time_to_minutes("22:30"), SUN)
    assert not grid.is_priority_window(time_to_minutes("23:00"), SAT)
    assert not grid.is_priority_window(time_to_minutes("19:30"), SAT)
    assert not grid.is_priority_window(time_to_minutes("20:00"), THU)


def test_priority_is_only_active_for_future_dates():
    grid = TimeGrid(FixedClock(local(FRI, 10)))
    assert not grid.is_priority_active(time_to_minutes("20:00"), FRI)
    assert grid.is_priority_active(time_to_minutes("20:00"), SAT)


def test_horizon_is_today_through_fourteen_days(clock):
    grid = TimeGrid(clock)
    assert grid.horizon_end() == WED.replace(day=28)
    assert grid.within_horizon(WED)
    assert not grid.within_horizon(WED.replace(day=29))
    assert not grid.within_horizon(WED.replace(day=13))
