"""
Domain models for intervals, schedule policies and booking decisions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

import pendulum
from pendulum import DateTime

DAY_NAMES: Tuple[str, ...] = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


def parse_weekday(value: int | str) -> int:
    """
    Normalise a weekday given as 0-6 (0=Monday) or as a label ("mon".."sun").

    Raises:
        ValueError: If the value is not a known weekday
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid weekday: {value!r}")
    if isinstance(value, int):
        if value not in range(7):
            raise ValueError(f"Weekday must be between 0 and 6, got {value}")
        return value

    key = str(value).strip().lower()[:3]
    if key not in DAY_NAMES:
        raise ValueError(f"Unknown weekday label: {value!r}")
    return DAY_NAMES.index(key)


def to_local(moment: datetime, timezone: str) -> DateTime:
    """
    Convert a timestamp to a pendulum DateTime in ``timezone``.

    Naive timestamps are read as wall-clock time in ``timezone``.
    """
    if moment.tzinfo is None:
        # pendulum.instance keeps naive pendulum DateTimes naive
        return pendulum.datetime(
            moment.year, moment.month, moment.day,
            moment.hour, moment.minute, moment.second, moment.microsecond,
            tz=timezone,
        )
    return pendulum.instance(moment).in_timezone(timezone)


def local_date(value: date, timezone: str) -> pendulum.Date:
    """Return the calendar date of ``value`` as seen in ``timezone``."""
    if isinstance(value, datetime):
        return to_local(value, timezone).date()
    return pendulum.date(value.year, value.month, value.day)


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range [start, end).

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def from_duration(cls, start: DateTime, duration_minutes: int) -> "TimeRange":
        """Build the range covering ``duration_minutes`` from ``start``."""
        return cls(start=start, end=start.add(minutes=duration_minutes))

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another. Touching ranges do not."""
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeRange") -> bool:
        """Check if ``other`` lies entirely inside this range."""
        return self.start <= other.start and other.end <= self.end

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        start = max(self.start, other.start)
        end = min(self.end, other.end)

        return TimeRange(start=start, end=end)

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """Return True if the two intervals share any instant."""
    return a.overlaps(b)


@dataclass(frozen=True)
class SchedulePolicy:
    """
    Recurring working hours of a provider or shop.

    ``open_days`` holds weekdays as 0=Monday ... 6=Sunday. An empty set means
    the provider is permanently closed.
    """
    open_days: FrozenSet[int]
    daily_start: time
    daily_end: time
    slot_step_minutes: int = 30
    timezone: str = "UTC"

    def __post_init__(self):
        object.__setattr__(
            self, "open_days", frozenset(parse_weekday(day) for day in self.open_days)
        )
        if self.daily_start >= self.daily_end:
            raise ValueError(
                f"Daily start {self.daily_start} must be before daily end {self.daily_end}"
            )
        if isinstance(self.slot_step_minutes, bool) or not isinstance(self.slot_step_minutes, int):
            raise ValueError("slot_step_minutes must be an integer")
        if self.slot_step_minutes <= 0:
            raise ValueError(f"slot_step_minutes must be positive, got {self.slot_step_minutes}")

    @classmethod
    def from_labels(
        cls,
        open_days: Iterable[int | str],
        daily_start: str,
        daily_end: str,
        slot_step_minutes: int = 30,
        timezone: str = "UTC",
    ) -> "SchedulePolicy":
        """Build a policy from weekday labels and "HH:MM" strings."""
        return cls(
            open_days=frozenset(parse_weekday(day) for day in open_days),
            daily_start=parse_time_of_day(daily_start),
            daily_end=parse_time_of_day(daily_end),
            slot_step_minutes=slot_step_minutes,
            timezone=timezone,
        )

    def is_open(self, day: date) -> bool:
        """Check if the shop is open on the given calendar day."""
        return local_date(day, self.timezone).weekday() in self.open_days

    def business_window(self, day: date) -> TimeRange:
        """
        Get the bookable window for a calendar day.

        Raises:
            ValueError: If the shop is closed that day
        """
        if not self.is_open(day):
            raise ValueError(f"Closed on {day}")

        local = local_date(day, self.timezone)
        start = pendulum.datetime(
            local.year, local.month, local.day,
            self.daily_start.hour, self.daily_start.minute,
            tz=self.timezone,
        )
        end = pendulum.datetime(
            local.year, local.month, local.day,
            self.daily_end.hour, self.daily_end.minute,
            tz=self.timezone,
        )

        return TimeRange(start=start, end=end)

    def day_labels(self) -> list[str]:
        """Open days as labels in weekday order."""
        return [DAY_NAMES[day] for day in sorted(self.open_days)]


def parse_time_of_day(value: str | time) -> time:
    """Parse "HH:MM" (or "HH:MM:SS") into a time of day."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)

    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Time of day must look like HH:MM, got {value!r}")
    try:
        hour, minute = int(parts[0]), int(parts[1])
        return time(hour=hour, minute=minute)
    except ValueError as exc:
        raise ValueError(f"Invalid time of day {value!r}: {exc}") from exc


@dataclass(frozen=True)
class ServiceItem:
    """
    A service booked in an appointment, as chosen on the booking page.

    Only ``name`` is required; id, price and duration are kept when the
    caller supplies them so they can be stored unchanged.
    """
    name: str
    id: Optional[int | str] = None
    price: Optional[int | float] = None
    duration_minutes: Optional[int] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Service name is required")

    @classmethod
    def from_value(cls, value: ServiceItem | str | Mapping[str, Any]) -> ServiceItem:
        """Build an item from a bare name or a mapping with a ``name`` key."""
        if isinstance(value, ServiceItem):
            return value
        if isinstance(value, str):
            return cls(name=value)
        if isinstance(value, Mapping):
            return cls(
                name=str(value.get("name") or ""),
                id=value.get("id"),
                price=value.get("price"),
                duration_minutes=value.get("duration_minutes"),
            )
        raise ValueError(f"Invalid service entry: {value!r}")

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        for key in ("id", "price", "duration_minutes"):
            if getattr(self, key) is not None:
                data[key] = getattr(self, key)
        return data


@dataclass(frozen=True)
class AppointmentRecord:
    """
    An existing booking as read from storage.
    """
    id: str
    provider_id: str
    start: DateTime
    duration_minutes: int
    client_id: Optional[str] = None
    services: Tuple[ServiceItem, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise ValueError(f"duration_minutes must be positive, got {self.duration_minutes}")
        object.__setattr__(self, "services", tuple(ServiceItem.from_value(s) for s in self.services))

    @property
    def interval(self) -> TimeRange:
        return TimeRange.from_duration(self.start, self.duration_minutes)


@dataclass(frozen=True, order=True)
class CandidateSlot:
    """A bookable start time produced by the slot generator."""
    start: DateTime

    def interval(self, duration_minutes: int) -> TimeRange:
        return TimeRange.from_duration(self.start, duration_minutes)

    def label(self) -> str:
        """Zero-padded 24h local time, e.g. "09:00"."""
        return self.start.format("HH:mm")


@dataclass(frozen=True)
class BookingRequest:
    """A prospective booking, checked by the validator before it is written."""
    provider_id: str
    date: date
    requested_start: DateTime
    duration_minutes: int


class RejectionReason(str, Enum):
    INVALID_REQUEST = "invalid_request"
    SHOP_CLOSED = "shop_closed"
    OUTSIDE_BUSINESS_HOURS = "outside_business_hours"
    SLOT_IN_PAST = "slot_in_past"
    SLOT_CONFLICT = "slot_conflict"


REJECTION_MESSAGES = {
    RejectionReason.INVALID_REQUEST: "The booking request is incomplete or malformed.",
    RejectionReason.SHOP_CLOSED: "The shop is closed on the selected day.",
    RejectionReason.OUTSIDE_BUSINESS_HOURS: "The selected time is outside business hours.",
    RejectionReason.SLOT_IN_PAST: "The selected time has already passed.",
    RejectionReason.SLOT_CONFLICT: "This time was just taken. Please pick another slot.",
}


@dataclass(frozen=True)
class BookingDecision:
    """
    Outcome of validating a booking request: accepted, or rejected with a reason.
    """
    reason: Optional[RejectionReason] = None
    detail: str = ""

    @classmethod
    def accept(cls) -> "BookingDecision":
        return cls()

    @classmethod
    def reject(cls, reason: RejectionReason, detail: str = "") -> "BookingDecision":
        return cls(reason=reason, detail=detail)

    @property
    def accepted(self) -> bool:
        return self.reason is None

    @property
    def message(self) -> str:
        """User-facing message for the decision."""
        if self.reason is None:
            return "Booking accepted."
        return REJECTION_MESSAGES[self.reason]

    @property
    def should_refresh_slots(self) -> bool:
        """Conflicts mean stale data; the client should re-query availability."""
        return self.reason is RejectionReason.SLOT_CONFLICT
