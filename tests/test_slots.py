from salonbook.core.slots import (
    compute_slots,
    minutes_to_time,
    normalize_time,
    overlaps,
    parse_time_strict,
    parse_time_to_minutes,
)

import pytest


def test_busy_interval_and_break_are_skipped_on_hourly_grid():
    slots = compute_slots(
        "09:00",
        "18:00",
        "12:00",
        "13:00",
        step_min=60,
        service_duration=60,
        busy=[{"start": "10:00", "duration_min": 60}],
    )
    assert slots == ["09:00", "11:00", "13:00", "14:00", "15:00", "16:00", "17:00"]


def test_half_hour_grid_includes_half_hours_after_break():
    slots = compute_slots(
        "09:00",
        "18:00",
        "12:00",
        "13:00",
        step_min=30,
        service_duration=60,
        busy=[{"start": "10:00", "duration_min": 60}],
    )
    assert slots == [
        "09:00",
        "11:00",
        "13:00",
        "13:30",
        "14:00",
        "14:30",
        "15:00",
        "15:30",
        "16:00",
        "16:30",
        "17:00",
    ]
    assert "09:30" not in slots
    assert "11:30" not in slots


def test_no_returned_slot_overlaps_busy_or_break():
    busy = [{"start": "09:30", "duration_min": 45}, {"start": "15:10", "duration_min": 20}]
    slots = compute_slots("09:00", "18:00", "12:00", "13:00", step_min=15, service_duration=40, busy=busy)
    assert slots
    for slot in slots:
        start = parse_time_to_minutes(slot)
        end = start + 40
        assert end <= 18 * 60
        assert not overlaps(start, end, 12 * 60, 13 * 60)
        assert not overlaps(start, end, 9 * 60 + 30, 10 * 60 + 15)
        assert not overlaps(start, end, 15 * 60 + 10, 15 * 60 + 30)


def test_slots_are_ascending_and_deterministic():
    kwargs = dict(step_min=30, service_duration=45, busy=[{"start": "14:00", "duration_min": 30}])
    first = compute_slots("08:00", "20:00", "12:00", "13:00", **kwargs)
    second = compute_slots("08:00", "20:00", "12:00", "13:00", **kwargs)
    assert first == second
    assert first == sorted(first)


def test_last_slot_ends_exactly_at_closing():
    slots = compute_slots("09:00", "11:00", step_min=30, service_duration=60)
    assert slots == ["09:00", "09:30", "10:00"]


def test_service_longer_than_window_gives_no_slots():
    assert compute_slots("09:00", "10:00", step_min=30, service_duration=90) == []


def test_zero_step_or_duration_gives_no_slots():
    assert compute_slots("09:00", "18:00", step_min=0, service_duration=60) == []
    assert compute_slots("09:00", "18:00", step_min=30, service_duration=0) == []


def test_break_needs_both_ends():
    with_half_break = compute_slots("11:00", "14:00", "12:00", None, step_min=60, service_duration=60)
    assert with_half_break == ["11:00", "12:00", "13:00"]


def test_touching_busy_interval_does_not_block():
    slots = compute_slots(
        "09:00",
        "11:00",
        step_min=60,
        service_duration=60,
        busy=[{"start": "10:00", "duration_min": 60}],
    )
    assert slots == ["09:00"]


def test_malformed_time_is_read_as_midnight_by_calculator():
    assert parse_time_to_minutes("nonsense") == 0
    assert parse_time_to_minutes(None) == 0
    assert parse_time_to_minutes("9:5") == 9 * 60 + 5


def test_strict_parse_rejects_malformed_time():
    assert parse_time_strict("09:30") == 570
    assert parse_time_strict("9:30:00") == 570
    for bad in ["", "24:00", "12:60", "noon", "12"]:
        with pytest.raises(ValueError):
            parse_time_strict(bad)


def test_normalize_time_pads_hours():
    assert normalize_time("9:05") == "09:05"
    assert minutes_to_time(13 * 60 + 30) == "13:30"
