from datetime import date, datetime, timedelta

import pytest

from salonbook.core.lead_time import BookingPolicy, check_start_allowed, filter_slots
from salonbook.errors import PastOrTooSoon

DAY = date(2026, 3, 10)
SLOTS = ["09:00", "10:00", "11:00", "12:00", "13:00", "14:00"]


def test_fixed_hours_boundary_is_inclusive():
    # now + 1 min margin + 2 h = 11:00 exactly
    now = datetime(2026, 3, 10, 8, 59)
    policy = BookingPolicy(mode="fixed-hours", hours=2)
    assert filter_slots(SLOTS, DAY, policy, now) == ["11:00", "12:00", "13:00", "14:00"]


def test_fixed_hours_one_minute_late_drops_slot():
    now = datetime(2026, 3, 10, 9, 0)
    policy = BookingPolicy(mode="fixed-hours", hours=2)
    assert filter_slots(SLOTS, DAY, policy, now) == ["12:00", "13:00", "14:00"]


def test_zero_hours_still_applies_safety_margin():
    now = datetime(2026, 3, 10, 9, 59, 30)
    assert filter_slots(SLOTS, DAY, BookingPolicy(), now) == ["11:00", "12:00", "13:00", "14:00"]


def test_future_day_passes_through_and_past_day_is_empty():
    now = datetime(2026, 3, 10, 23, 0)
    policy = BookingPolicy(mode="fixed-hours", hours=48)
    assert filter_slots(SLOTS, DAY + timedelta(days=1), policy, now) == SLOTS
    assert filter_slots(SLOTS, DAY - timedelta(days=1), policy, now) == []


def test_next_day_only_blocks_today():
    now = datetime(2026, 3, 10, 7, 0)
    policy = BookingPolicy(mode="next-day-only")
    assert filter_slots(SLOTS, DAY, policy, now) == []
    assert filter_slots(SLOTS, DAY + timedelta(days=1), policy, now) == SLOTS


def test_original_slot_is_put_back_at_the_front():
    now = datetime(2026, 3, 10, 10, 30)
    original = datetime(2026, 3, 10, 10, 0)
    out = filter_slots(SLOTS, DAY, BookingPolicy(), now, original_start=original)
    assert out == ["10:00", "11:00", "12:00", "13:00", "14:00"]


def test_next_day_only_edit_leads_with_original_slot():
    now = datetime(2026, 3, 10, 7, 0)
    original = datetime(2026, 3, 10, 10, 0)
    slots = ["09:00", "10:00", "11:00", "13:00"]
    out = filter_slots(slots, DAY, BookingPolicy(mode="next-day-only"), now, original_start=original)
    assert out == ["10:00", "09:00", "11:00", "13:00"]


def test_next_day_only_edit_of_other_day_stays_empty():
    now = datetime(2026, 3, 10, 7, 0)
    original = datetime(2026, 3, 12, 10, 0)
    out = filter_slots(SLOTS, DAY, BookingPolicy(mode="next-day-only"), now, original_start=original)
    assert out == []


def test_original_slot_on_another_day_is_ignored():
    now = datetime(2026, 3, 10, 12, 30)
    original = datetime(2026, 3, 11, 9, 0)
    out = filter_slots(SLOTS, DAY, BookingPolicy(), now, original_start=original)
    assert out == ["13:00", "14:00"]


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        BookingPolicy(mode="whenever")


def test_check_start_rejects_past():
    now = datetime(2026, 3, 10, 10, 0)
    with pytest.raises(PastOrTooSoon, match="already passed"):
        check_start_allowed(datetime(2026, 3, 10, 9, 0), BookingPolicy(), now)


def test_check_start_rejects_inside_lead_time():
    now = datetime(2026, 3, 10, 10, 0)
    policy = BookingPolicy(mode="fixed-hours", hours=3)
    with pytest.raises(PastOrTooSoon, match="advance notice"):
        check_start_allowed(datetime(2026, 3, 10, 12, 0), policy, now)
    check_start_allowed(datetime(2026, 3, 10, 13, 1), policy, now)


def test_check_start_next_day_only():
    now = datetime(2026, 3, 10, 10, 0)
    policy = BookingPolicy(mode="next-day-only")
    with pytest.raises(PastOrTooSoon, match="next day"):
        check_start_allowed(datetime(2026, 3, 10, 17, 0), policy, now)
    check_start_allowed(datetime(2026, 3, 11, 9, 0), policy, now)


def test_unchanged_start_skips_policy():
    now = datetime(2026, 3, 10, 10, 0)
    original = datetime(2026, 3, 10, 9, 0)
    check_start_allowed(datetime(2026, 3, 10, 9, 0, 30), BookingPolicy(mode="next-day-only"), now, original_start=original)
