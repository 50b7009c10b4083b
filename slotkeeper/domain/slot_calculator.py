"""
Core business logic for calculating bookable time slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O). The same code
answers the slot picker and guards the booking endpoint.
"""

from datetime import date, datetime
from typing import List, Sequence

from pendulum import DateTime

from .conflict_resolver import filter_available
from .exceptions import InvalidRequestError
from .models import AppointmentRecord, CandidateSlot, SchedulePolicy, local_date, to_local


def require_positive_minutes(value: object, name: str = "duration_minutes") -> int:
    """
    Validate a minute count supplied by a caller.

    Raises:
        InvalidRequestError: If the value is not a positive integer
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequestError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise InvalidRequestError(f"{name} must be greater than zero, got {value}")
    return value


def is_past(start: DateTime, now: DateTime) -> bool:
    """
    Check if a slot start is no longer bookable.

    Times are compared at minute granularity; a slot starting in the current
    minute counts as past.
    """
    return start <= now.set(second=0, microsecond=0)


class SlotCalculator:
    """
    Calculates candidate start times for one schedule policy.

    Algorithm:
    1. Closed days (and days already gone) produce nothing
    2. Walk the business window in ``slot_step_minutes`` increments
    3. Keep a start only if the whole service fits before closing
    4. On the current day, drop starts that are already in the past
    """

    def __init__(self, policy: SchedulePolicy):
        self.policy = policy

    def generate_slots(
        self,
        day: date,
        duration_minutes: int,
        now: datetime,
    ) -> List[CandidateSlot]:
        """
        Generate the ordered candidate slots for a calendar day.

        Args:
            day: Target calendar date (read in the policy timezone)
            duration_minutes: Length of the requested service
            now: Current time; naive values are local shop time

        Returns:
            Candidate slots in ascending order (possibly empty)
        """
        require_positive_minutes(duration_minutes)

        if not self.policy.is_open(day):
            return []

        now_local = to_local(now, self.policy.timezone)
        target = local_date(day, self.policy.timezone)
        today = now_local.date()

        if target < today:
            return []

        window = self.policy.business_window(target)
        step = self.policy.slot_step_minutes
        slots: List[CandidateSlot] = []

        offset = 0
        while True:
            start = window.start.add(minutes=offset)
            offset += step

            # Slots that would run past closing are never offered
            if start.add(minutes=duration_minutes) > window.end:
                break

            if target == today and is_past(start, now_local):
                continue

            slots.append(CandidateSlot(start=start))

        return slots

    def find_available_slots(
        self,
        day: date,
        duration_minutes: int,
        existing: Sequence[AppointmentRecord],
        now: datetime,
    ) -> List[CandidateSlot]:
        """Generate candidate slots and drop those overlapping existing bookings."""
        candidates = self.generate_slots(day, duration_minutes, now)
        return filter_available(candidates, duration_minutes, existing)


def generate_slots(
    policy: SchedulePolicy,
    day: date,
    duration_minutes: int,
    now: datetime,
) -> List[CandidateSlot]:
    """Functional shortcut for ``SlotCalculator(policy).generate_slots``."""
    return SlotCalculator(policy).generate_slots(day, duration_minutes, now)
