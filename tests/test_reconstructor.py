from datetime import date, datetime, time, timedelta, timezone

import pytest

from routetrack.models.domain import Checkpoint, RoutePlan, Stop
from routetrack.services.schedule import ScheduleOptions, estimate_end_time, reconstruct, resolve_legs
from routetrack.services.schedule.reconstructor import find_anchor


def _plan(stop_count: int = 3, total: float = 3600, legs=None, service: float = 5) -> RoutePlan:
    return RoutePlan(
        stops=[Stop(index=i, name=f"Stop {i + 1}") for i in range(stop_count)],
        total_duration_seconds=total,
        legs=legs,
        service_time_minutes=service,
    )


def _at(hour: int, minute: int, second: int = 0) -> datetime:
    return datetime(2024, 5, 6, hour, minute, second)


def _start(at: datetime) -> Checkpoint:
    return Checkpoint(stop_index=-1, route_started_at=at)


def test_started_route_without_progress_uses_even_legs_and_dwell():
    schedule = reconstruct(_plan(), [_start(_at(8, 0))])

    assert [entry.arrival for entry in schedule] == ["08:15", "08:35", "08:55"]
    assert [entry.departure for entry in schedule] == ["08:20", "08:40", "09:00"]
    assert not any(entry.is_actual for entry in schedule)
    assert [entry.estimated_minutes_from_now for entry in schedule] == [15, 35, 55]


def test_partial_progress_reanchors_on_latest_departure():
    checkpoints = [
        _start(_at(8, 0)),
        Checkpoint(stop_index=0, actual_arrival_time=_at(8, 20), actual_departure_time=_at(8, 26)),
    ]

    schedule = reconstruct(_plan(), checkpoints)

    assert (schedule[0].arrival, schedule[0].departure, schedule[0].is_actual) == ("08:20", "08:26", True)
    assert schedule[0].estimated_minutes_from_now is None
    assert schedule[1].arrival == "08:41"
    assert schedule[1].departure == "08:46"
    assert schedule[1].estimated_minutes_from_now == 15
    assert schedule[2].arrival == "09:01"
    assert not schedule[1].is_actual and not schedule[2].is_actual


def test_arrival_without_departure_adds_service_time():
    checkpoints = [_start(_at(8, 0)), Checkpoint(stop_index=0, actual_arrival_time=_at(8, 10))]

    schedule = reconstruct(_plan(), checkpoints)

    assert schedule[0].departure == "08:15"
    assert schedule[0].is_actual
    assert schedule[1].arrival == "08:30"


def test_not_started_route_uses_planned_departure():
    plan = _plan()
    plan.route_date = date(2024, 5, 6)
    # Stop checkpoints without a route start are ignored.
    checkpoints = [Checkpoint(stop_index=0, actual_arrival_time=_at(9, 0))]

    schedule = reconstruct(plan, checkpoints, ScheduleOptions(default_departure=time(7, 30)))

    assert [entry.arrival for entry in schedule] == ["07:45", "08:05", "08:25"]
    assert schedule[0].arrival_at == datetime(2024, 5, 6, 7, 45)
    assert not any(entry.is_actual for entry in schedule)


def test_empty_plan_returns_empty_schedule():
    assert reconstruct(_plan(stop_count=0), [_start(_at(8, 0))]) == []


def test_reconstruct_is_idempotent():
    plan = _plan()
    checkpoints = [
        _start(_at(8, 0)),
        Checkpoint(stop_index=1, actual_arrival_time=_at(8, 40)),
    ]

    assert reconstruct(plan, checkpoints) == reconstruct(plan, checkpoints)


def test_anchor_uses_highest_index_with_progress():
    plan = _plan(stop_count=4, total=5000)
    checkpoints = [
        _start(_at(8, 0)),
        Checkpoint(stop_index=0, actual_arrival_time=_at(8, 15)),
        Checkpoint(stop_index=2, actual_arrival_time=_at(9, 0), actual_departure_time=_at(9, 10)),
    ]

    schedule = reconstruct(plan, checkpoints)

    assert schedule[2].is_actual
    assert schedule[3].arrival_at == _at(9, 10) + timedelta(seconds=1000)
    # Stop 1 has no data and is projected from stop 0.
    assert not schedule[1].is_actual
    assert schedule[1].arrival_at == _at(8, 20) + timedelta(seconds=1000)


def test_find_anchor_without_progress_returns_route_start():
    index, departure = find_anchor({}, 3, _at(8, 0), timedelta(minutes=5))

    assert index == -1
    assert departure == _at(8, 0)


def test_schedule_is_monotonic():
    plan = _plan(stop_count=5, legs=[300, 0, 1200, 60, 600, 900])
    checkpoints = [
        _start(_at(8, 0)),
        Checkpoint(stop_index=1, actual_arrival_time=_at(8, 12), actual_departure_time=_at(8, 18)),
    ]

    schedule = reconstruct(plan, checkpoints)

    for entry in schedule:
        assert entry.arrival_at <= entry.departure_at
    for previous, current in zip(schedule, schedule[1:]):
        assert previous.departure_at <= current.arrival_at


def test_gap_stops_never_pass_an_early_recorded_arrival():
    checkpoints = [
        _start(_at(8, 0)),
        Checkpoint(stop_index=2, actual_arrival_time=_at(8, 10), actual_departure_time=_at(8, 12)),
    ]

    schedule = reconstruct(_plan(), checkpoints)

    assert [(e.arrival, e.departure, e.is_actual) for e in schedule] == [
        ("08:10", "08:10", False),
        ("08:10", "08:10", False),
        ("08:10", "08:12", True),
    ]
    for previous, current in zip(schedule, schedule[1:]):
        assert previous.departure_at <= current.arrival_at


def test_gap_stops_are_capped_by_nearest_later_recording():
    plan = _plan(stop_count=4, total=5000)
    checkpoints = [
        _start(_at(8, 0)),
        Checkpoint(stop_index=1, actual_departure_time=_at(8, 20)),
        Checkpoint(stop_index=3, actual_arrival_time=_at(9, 0)),
    ]

    schedule = reconstruct(plan, checkpoints)

    assert schedule[0].departure_at <= _at(8, 20)
    assert schedule[1].departure == "08:20"
    assert schedule[2].arrival_at == _at(8, 20) + timedelta(seconds=1000)
    for previous, current in zip(schedule, schedule[1:]):
        assert previous.departure_at <= current.arrival_at


def test_per_leg_durations_are_used_when_complete():
    plan = _plan(legs=[600, 1200, 300, 900])

    schedule = reconstruct(plan, [_start(_at(8, 0))])

    assert [entry.arrival for entry in schedule] == ["08:10", "08:35", "08:45"]


@pytest.mark.parametrize(
    "legs",
    [
        [600, 1200],
        [600, float("nan"), 300, 900],
        [600, None, 300, 900],
        [600, "soon", 300, 900],
    ],
)
def test_unusable_legs_fall_back_to_even_split(legs):
    plan = _plan(legs=legs)

    assert resolve_legs(plan) == [900.0, 900.0, 900.0, 900.0]


def test_negative_legs_are_clamped_to_zero():
    plan = _plan(legs=[-300, 600, 600, 600])

    assert resolve_legs(plan)[0] == 0.0
    schedule = reconstruct(plan, [_start(_at(8, 0))])
    assert schedule[0].arrival == "08:00"


def test_zero_service_time_is_respected():
    schedule = reconstruct(_plan(service=0), [_start(_at(8, 0))])

    assert [entry.arrival for entry in schedule] == ["08:15", "08:30", "08:45"]
    assert schedule[0].arrival == schedule[0].departure


def test_plan_without_service_time_uses_options_default():
    plan = RoutePlan(stops=[Stop(index=0, name="A"), Stop(index=1, name="B")], total_duration_seconds=2700)

    schedule = reconstruct(plan, [_start(_at(8, 0))], ScheduleOptions(default_service_time_minutes=10))

    assert plan.service_time_minutes is None
    assert [(e.arrival, e.departure) for e in schedule] == [("08:15", "08:25"), ("08:40", "08:50")]


def test_options_service_time_overrides_plan():
    schedule = reconstruct(_plan(service=5), [_start(_at(8, 0))], ScheduleOptions(service_time_minutes=10))

    assert schedule[0].departure == "08:25"
    assert schedule[1].arrival == "08:40"


def test_departure_only_checkpoint_anchors_projection():
    checkpoints = [_start(_at(8, 0)), Checkpoint(stop_index=0, actual_departure_time=_at(8, 30))]

    schedule = reconstruct(_plan(), checkpoints)

    assert schedule[0].departure == "08:30"
    assert schedule[0].arrival == "08:15"
    assert schedule[1].arrival == "08:45"


def test_departure_before_arrival_is_clamped():
    checkpoints = [
        _start(_at(8, 0)),
        Checkpoint(stop_index=0, actual_arrival_time=_at(8, 20), actual_departure_time=_at(8, 10)),
    ]

    schedule = reconstruct(_plan(), checkpoints)

    assert schedule[0].departure == "08:20"
    assert schedule[1].arrival == "08:35"


def test_unknown_stop_indexes_are_ignored():
    checkpoints = [_start(_at(8, 0)), Checkpoint(stop_index=7, actual_arrival_time=_at(9, 0))]

    assert reconstruct(_plan(), checkpoints) == reconstruct(_plan(), [_start(_at(8, 0))])


def test_start_checkpoint_falls_back_to_arrival_field():
    checkpoints = [Checkpoint(stop_index=-1, actual_arrival_time=_at(9, 0))]

    schedule = reconstruct(_plan(), checkpoints)

    assert schedule[0].arrival == "09:15"


def test_naive_checkpoint_on_aware_route_is_aligned():
    start = datetime(2024, 5, 6, 8, 0, tzinfo=timezone.utc)
    checkpoints = [
        Checkpoint(stop_index=-1, route_started_at=start),
        Checkpoint(stop_index=0, actual_arrival_time=_at(8, 20)),
    ]

    schedule = reconstruct(_plan(), checkpoints)

    assert schedule[0].arrival_at == start + timedelta(minutes=20)
    assert schedule[1].arrival_at.tzinfo is timezone.utc


def test_estimate_end_time_includes_dwell():
    plan = _plan()

    assert estimate_end_time(plan, _at(8, 0)) == _at(9, 15)
