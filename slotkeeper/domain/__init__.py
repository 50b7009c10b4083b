"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .booking_validator import validate
from .conflict_resolver import filter_available, has_conflict
from .models import (
    AppointmentRecord,
    BookingDecision,
    BookingRequest,
    CandidateSlot,
    RejectionReason,
    SchedulePolicy,
    ServiceItem,
    TimeRange,
    overlaps,
)
from .slot_calculator import SlotCalculator, generate_slots

__all__ = [
    "AppointmentRecord",
    "BookingDecision",
    "BookingRequest",
    "CandidateSlot",
    "RejectionReason",
    "SchedulePolicy",
    "ServiceItem",
    "SlotCalculator",
    "TimeRange",
    "filter_available",
    "generate_slots",
    "has_conflict",
    "overlaps",
    "validate",
]
