"""Slot calculator.

Works on wall-clock ``HH:MM`` strings of a single implicit day. Callers are
responsible for converting instants to the tenant's local time first.
"""

import re
from typing import Iterable, Mapping

DEFAULT_STEP_MINUTES = 30

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(?::[0-5]\d)?$")


def parse_time_to_minutes(value: str | None) -> int:
    """Lenient parse used by the calculator: anything unparseable is minute 0."""
    raw = str(value or "").strip()
    parts = raw.split(":")
    if len(parts) < 2:
        return 0
    try:
        return int(parts[0]) * 60 + int(parts[1])
    except ValueError:
        return 0


def parse_time_strict(value: str) -> int:
    match = _TIME_RE.match(str(value or "").strip())
    if not match:
        raise ValueError(f"invalid time {value!r}, expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def normalize_time(value: str) -> str:
    return minutes_to_time(parse_time_strict(value))


def minutes_to_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and b_start < a_end


def busy_ranges(busy: Iterable[Mapping]) -> list[tuple[int, int]]:
    out = []
    for item in busy:
        start = parse_time_to_minutes(item["start"])
        out.append((start, start + int(item["duration_min"])))
    return out


def compute_slots(
    work_start: str,
    work_end: str,
    break_start: str | None = None,
    break_end: str | None = None,
    step_min: int = DEFAULT_STEP_MINUTES,
    service_duration: int = 0,
    busy: Iterable[Mapping] = (),
) -> list[str]:
    """Return the ordered ``HH:MM`` starts whose whole service window is free.

    ``busy`` items are mappings with ``start`` (``HH:MM``) and ``duration_min``.
    The break is only applied when both of its ends are given.
    """
    step = int(step_min)
    duration = int(service_duration)
    if step <= 0 or duration <= 0:
        return []

    work_start_m = parse_time_to_minutes(work_start)
    work_end_m = parse_time_to_minutes(work_end)
    lunch = None
    if break_start and break_end:
        lunch = (parse_time_to_minutes(break_start), parse_time_to_minutes(break_end))
    taken = busy_ranges(busy)

    slots: list[str] = []
    start = work_start_m
    while start + duration <= work_end_m:
        end = start + duration
        if lunch is not None and overlaps(start, end, lunch[0], lunch[1]):
            start += step
            continue
        if any(overlaps(start, end, b_start, b_end) for b_start, b_end in taken):
            start += step
            continue
        slots.append(minutes_to_time(start))
        start += step
    return slots
