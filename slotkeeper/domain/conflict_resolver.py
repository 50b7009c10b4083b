"""
Conflict detection between candidate slots and existing appointments.

Every conflict decision goes through ``TimeRange.overlaps`` so that the
availability shown to customers and the check done before a write agree.
"""

from typing import Iterable, List, Sequence

from .models import AppointmentRecord, CandidateSlot, TimeRange, overlaps


def has_conflict(interval: TimeRange, existing: Iterable[AppointmentRecord]) -> bool:
    """Check if ``interval`` overlaps any existing appointment."""
    return any(overlaps(interval, appointment.interval) for appointment in existing)


def filter_available(
    slots: Sequence[CandidateSlot],
    duration_minutes: int,
    existing: Sequence[AppointmentRecord],
) -> List[CandidateSlot]:
    """
    Keep the slots whose interval is free, preserving their order.

    Busy intervals are sorted and merged first so each slot only scans the
    busy blocks that start before it ends. The result is the same as testing
    every slot against every appointment.
    """
    busy = merge_intervals([appointment.interval for appointment in existing])
    available: List[CandidateSlot] = []

    for slot in slots:
        interval = slot.interval(duration_minutes)
        conflict = False
        for block in busy:
            if block.start >= interval.end:
                break
            if overlaps(interval, block):
                conflict = True
                break
        if not conflict:
            available.append(slot)

    return available


def merge_intervals(ranges: Sequence[TimeRange]) -> List[TimeRange]:
    """
    Merge overlapping or adjacent time ranges.

    Example: [09:00-10:00, 10:00-11:00] -> [09:00-11:00]
    """
    if not ranges:
        return []

    sorted_ranges = sorted(ranges, key=lambda r: r.start)
    merged: List[TimeRange] = [sorted_ranges[0]]

    for current in sorted_ranges[1:]:
        last = merged[-1]

        if current.start <= last.end:
            merged[-1] = TimeRange(
                start=last.start,
                end=max(last.end, current.end)
            )
        else:
            merged.append(current)

    return merged
