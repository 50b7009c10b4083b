"""
Application service behind the slot query and booking commit interfaces.

The service fetches a fresh snapshot from a booking store, hands it to the
pure domain engine and turns the outcome into HTTP-style responses. Both
interfaces use the same ``SlotCalculator``/``validate`` code, so the slots a
customer sees and the checks done before a write cannot drift apart.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Annotated, Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol

import pendulum
from pendulum import DateTime
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from ..domain.booking_validator import validate
from ..domain.exceptions import (
    BookingConflictError,
    InvalidRequestError,
    PersistenceError,
    ProviderNotFoundError,
)
from ..domain.models import (
    AppointmentRecord,
    BookingDecision,
    BookingRequest,
    CandidateSlot,
    RejectionReason,
    SchedulePolicy,
    ServiceItem,
    to_local,
)
from ..domain.slot_calculator import SlotCalculator

logger = logging.getLogger(__name__)


class BookingStore(Protocol):
    """Protocol describing the persistence behaviour needed by the service."""

    def get_shop_id(self, provider_id: str) -> str:
        """Return the shop a provider belongs to."""

    def get_schedule_policy(self, provider_id: str) -> SchedulePolicy:
        """Return the provider's effective working hours."""

    def list_appointments(
        self, provider_id: str, day: date, timezone: str
    ) -> List[AppointmentRecord]:
        """Return the provider's appointments starting on ``day``."""

    def insert_appointment(self, record: AppointmentRecord) -> AppointmentRecord:
        """Atomically check for overlaps and insert; raise BookingConflictError on loss."""

    def find_or_create_client(
        self, shop_id: str, name: str, phone: str, email: Optional[str] = None
    ) -> str:
        """Return the id of the shop's client with this phone, creating it if needed."""

    def touch_client_last_visit(self, client_id: str, when: DateTime) -> None:
        """Record the time of the client's latest booking."""

    def update_schedule_policy(self, target_id: str, policy: SchedulePolicy) -> None:
        """Replace the working hours of a provider or shop."""


def _coerce_identifier(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


ProviderId = Annotated[str, BeforeValidator(_coerce_identifier)]


class SlotQuery(BaseModel):
    """Input of the slot query interface."""
    model_config = ConfigDict(populate_by_name=True)

    provider_id: ProviderId = Field(alias="providerId", min_length=1)
    day: date = Field(alias="date")
    duration_minutes: int = Field(alias="durationMinutes", gt=0)


class ClientDetails(BaseModel):
    """Customer identity attached to a booking."""
    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: Optional[str] = None


def _coerce_service(value: Any) -> Any:
    if isinstance(value, str):
        return {"name": value}
    return value


class ServiceSelection(BaseModel):
    """A service picked on the booking page; bare names are accepted too."""
    id: Optional[int | str] = None
    name: str = Field(min_length=1)
    price: Optional[int | float] = None
    duration_minutes: Optional[int] = None

    def to_item(self) -> ServiceItem:
        return ServiceItem(name=self.name, id=self.id, price=self.price, duration_minutes=self.duration_minutes)


class BookingPayload(BaseModel):
    """Input of the booking commit interface."""
    model_config = ConfigDict(populate_by_name=True)

    provider_id: ProviderId = Field(alias="providerId", min_length=1)
    start_time: datetime = Field(alias="startTime")
    duration_minutes: int = Field(alias="durationMinutes", gt=0)
    services: List[Annotated[ServiceSelection, BeforeValidator(_coerce_service)]] = Field(min_length=1)
    client: ClientDetails


@dataclass(frozen=True)
class ServiceResponse:
    """HTTP-style result: a status code and a JSON-serialisable body."""
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @classmethod
    def error(cls, status_code: int, message: str, **extra: Any) -> "ServiceResponse":
        return cls(status_code=status_code, body={"error": message, **extra})


def describe_validation_error(exc: ValidationError) -> str:
    """Flatten pydantic errors into one readable line."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


class BookingService:
    """
    Orchestrates store reads, the domain engine and store writes.

    ``clock`` supplies "now" so that every decision is made against an
    explicit instant; tests inject a fixed one.
    """

    def __init__(
        self,
        store: BookingStore,
        clock: Callable[[], datetime] = pendulum.now,
        timezone: str = "UTC",
    ) -> None:
        self._store = store
        self._clock = clock
        self._timezone = timezone

    def available_slots(
        self,
        provider_id: str,
        day: date,
        duration_minutes: int,
    ) -> List[CandidateSlot]:
        """
        Compute the free slots for a provider on a day against fresh data.

        Raises:
            ProviderNotFoundError: If the provider does not exist
            InvalidRequestError: If the duration is not a positive integer
            PersistenceError: If the store cannot be read
        """
        policy = self._store.get_schedule_policy(provider_id)
        existing = self._store.list_appointments(provider_id, day, policy.timezone)
        return SlotCalculator(policy).find_available_slots(
            day, duration_minutes, existing, self._clock()
        )

    def get_available_slots(self, payload: Mapping[str, Any]) -> ServiceResponse:
        """Query interface: ``{providerId, date, durationMinutes}`` -> ``{slots}``."""
        try:
            query = SlotQuery.model_validate(payload)
        except ValidationError as exc:
            return ServiceResponse.error(400, f"Incomplete parameters: {describe_validation_error(exc)}")

        try:
            slots = self.available_slots(query.provider_id, query.day, query.duration_minutes)
        except ProviderNotFoundError as exc:
            return ServiceResponse.error(404, str(exc))
        except InvalidRequestError as exc:
            return ServiceResponse.error(400, str(exc))
        except PersistenceError:
            logger.exception("Could not compute slots for provider %s", query.provider_id)
            return ServiceResponse.error(500, "Internal error while computing slots.")

        return ServiceResponse(status_code=200, body={"slots": [slot.label() for slot in slots]})

    def check_booking(
        self,
        provider_id: str,
        start_time: datetime,
        duration_minutes: int,
    ) -> BookingDecision:
        """
        Run the booking validator against a freshly fetched snapshot.

        Raises:
            ProviderNotFoundError: If the provider does not exist
            PersistenceError: If the store cannot be read
        """
        policy = self._store.get_schedule_policy(provider_id)
        start = to_local(start_time, policy.timezone)
        existing = self._store.list_appointments(provider_id, start.date(), policy.timezone)

        request = BookingRequest(
            provider_id=provider_id,
            date=start.date(),
            requested_start=start,
            duration_minutes=duration_minutes,
        )
        return validate(request, policy, existing, self._clock())

    def create_booking(self, payload: Mapping[str, Any]) -> ServiceResponse:
        """
        Commit interface: validate and persist a booking.

        Conflicts (found by the validator or by the store's atomic insert)
        answer 409 with ``retry: true`` so the client re-queries its slots.
        """
        try:
            booking = BookingPayload.model_validate(payload)
        except ValidationError as exc:
            return ServiceResponse.error(
                400,
                f"Incomplete booking data: {describe_validation_error(exc)}",
                reason=RejectionReason.INVALID_REQUEST.value,
            )

        try:
            decision = self.check_booking(
                booking.provider_id, booking.start_time, booking.duration_minutes
            )
            if not decision.accepted:
                logger.info(
                    "Booking for provider %s at %s rejected: %s",
                    booking.provider_id, booking.start_time, decision.reason.value,
                )
                return self._rejection_response(decision)

            record = self._persist(booking)
        except ProviderNotFoundError as exc:
            return ServiceResponse.error(404, str(exc))
        except BookingConflictError as exc:
            logger.warning("Lost booking race for provider %s: %s", booking.provider_id, exc)
            return self._rejection_response(BookingDecision.reject(RejectionReason.SLOT_CONFLICT))
        except PersistenceError:
            logger.exception("Could not store booking for provider %s", booking.provider_id)
            return ServiceResponse.error(500, "Internal error while saving the booking.")

        return ServiceResponse(
            status_code=201,
            body={
                "message": "Booking confirmed.",
                "bookingId": record.id,
                "appointment": appointment_to_dict(record),
            },
        )

    def _persist(self, booking: BookingPayload) -> AppointmentRecord:
        policy = self._store.get_schedule_policy(booking.provider_id)
        shop_id = self._store.get_shop_id(booking.provider_id)
        client_id = self._store.find_or_create_client(
            shop_id, booking.client.name, booking.client.phone, booking.client.email
        )

        record = self._store.insert_appointment(
            AppointmentRecord(
                id=uuid.uuid4().hex,
                provider_id=booking.provider_id,
                start=to_local(booking.start_time, policy.timezone),
                duration_minutes=booking.duration_minutes,
                client_id=client_id,
                services=tuple(service.to_item() for service in booking.services),
            )
        )
        logger.info("Booked %s for provider %s at %s", record.id, record.provider_id, record.start)

        try:
            self._store.touch_client_last_visit(client_id, to_local(self._clock(), policy.timezone))
        except PersistenceError as exc:
            logger.warning("Booking %s stored but client %s not updated: %s", record.id, client_id, exc)

        return record

    @staticmethod
    def _rejection_response(decision: BookingDecision) -> ServiceResponse:
        reason = decision.reason
        if reason is RejectionReason.SLOT_CONFLICT:
            return ServiceResponse.error(409, decision.message, reason=reason.value, retry=True)
        if reason is RejectionReason.INVALID_REQUEST:
            message = decision.detail or decision.message
            return ServiceResponse.error(400, message, reason=reason.value)
        return ServiceResponse.error(422, decision.message, reason=reason.value)

    def update_working_hours(
        self,
        target_id: str,
        *,
        open_days: Iterable[int | str],
        start_time: str,
        end_time: str,
        slot_step_minutes: int = 30,
        timezone: Optional[str] = None,
    ) -> SchedulePolicy:
        """
        Replace the working hours of a provider or shop.

        Without an explicit ``timezone`` a provider keeps the zone of its
        current policy; other targets get the service timezone.

        Raises:
            InvalidRequestError: If the hours break the policy invariants
            ProviderNotFoundError: If the target does not exist
        """
        if timezone is None:
            timezone = self._current_timezone(target_id)

        try:
            policy = SchedulePolicy.from_labels(
                open_days,
                start_time,
                end_time,
                slot_step_minutes=slot_step_minutes,
                timezone=timezone,
            )
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc

        self._store.update_schedule_policy(target_id, policy)
        logger.info(
            "Working hours of %s set to %s %s-%s every %s min",
            target_id, ",".join(policy.day_labels()), start_time, end_time, slot_step_minutes,
        )
        return policy

    def _current_timezone(self, target_id: str) -> str:
        try:
            return self._store.get_schedule_policy(target_id).timezone
        except ProviderNotFoundError:
            return self._timezone


def appointment_to_dict(record: AppointmentRecord) -> Dict[str, Any]:
    """Serialise an appointment for API responses and data files."""
    return {
        "id": record.id,
        "provider_id": record.provider_id,
        "start": record.start.to_iso8601_string(),
        "duration_minutes": record.duration_minutes,
        "client_id": record.client_id,
        "services": [service.as_dict() for service in record.services],
    }


__all__ = [
    "BookingPayload",
    "BookingService",
    "BookingStore",
    "ClientDetails",
    "ServiceResponse",
    "SlotQuery",
    "appointment_to_dict",
    "describe_validation_error",
]
