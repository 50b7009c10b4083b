"""
Validation of a single booking request against a policy and existing bookings.

The validator is a fast pre-check. It cannot stop two concurrent writers that
both read the same snapshot; the store's atomic insert is the real guard.
"""

import logging
from datetime import date, datetime
from typing import Sequence

from .conflict_resolver import has_conflict
from .exceptions import InvalidRequestError
from .models import (
    AppointmentRecord,
    BookingDecision,
    BookingRequest,
    RejectionReason,
    SchedulePolicy,
    TimeRange,
    to_local,
)
from .slot_calculator import is_past, require_positive_minutes

logger = logging.getLogger(__name__)


def validate(
    request: BookingRequest,
    policy: SchedulePolicy,
    existing: Sequence[AppointmentRecord],
    now: datetime,
) -> BookingDecision:
    """
    Accept or reject a booking request. The first failing check wins.

    Order of checks: request shape, open day, business hours, past time,
    overlap with existing appointments.
    """
    try:
        _check_request_shape(request)
    except InvalidRequestError as exc:
        return BookingDecision.reject(RejectionReason.INVALID_REQUEST, str(exc))

    if not policy.is_open(request.date):
        return BookingDecision.reject(RejectionReason.SHOP_CLOSED)

    start = to_local(request.requested_start, policy.timezone)
    requested = TimeRange.from_duration(start, request.duration_minutes)

    if not policy.business_window(request.date).contains(requested):
        return BookingDecision.reject(RejectionReason.OUTSIDE_BUSINESS_HOURS)

    now_local = to_local(now, policy.timezone)
    if is_past(start, now_local):
        return BookingDecision.reject(RejectionReason.SLOT_IN_PAST)

    if has_conflict(requested, existing):
        logger.debug("Request %s overlaps an existing appointment", requested)
        return BookingDecision.reject(RejectionReason.SLOT_CONFLICT)

    return BookingDecision.accept()


def _check_request_shape(request: BookingRequest) -> None:
    if not request.provider_id:
        raise InvalidRequestError("provider_id is required")
    if not isinstance(request.date, date):
        raise InvalidRequestError("date is required")
    if not isinstance(request.requested_start, datetime):
        raise InvalidRequestError("requested_start is required")
    require_positive_minutes(request.duration_minutes)
