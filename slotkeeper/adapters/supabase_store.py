"""
Booking store backed by the shop's hosted Postgres (Supabase REST API).

Tables used: ``team_members`` (provider -> shop), ``shop_settings`` (working
hours), ``appointments`` and ``clients``. The ``appointments`` table must
carry an exclusion constraint on (barber_id, appointment interval); the REST
API answers 409 when an insert violates it, which is how concurrent bookings
end with exactly one winner.

``shop_settings`` stores only ``start_time``, ``end_time`` and ``open_days``;
the slot step always comes from the configured defaults.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import (
    BookingConflictError,
    ProviderNotFoundError,
    StorageAPIError,
)
from ..domain.models import AppointmentRecord, SchedulePolicy, local_date, to_local

logger = logging.getLogger(__name__)

# Weekday labels stored in shop_settings.open_days, indexed 0=Monday
STORED_DAY_LABELS = ("seg", "ter", "qua", "qui", "sex", "sab", "dom")


def decode_open_days(labels: Sequence[str]) -> frozenset:
    """Map stored weekday labels to 0=Monday ints, ignoring unknown labels."""
    days = set()
    for label in labels:
        key = str(label).strip().lower()
        if key in STORED_DAY_LABELS:
            days.add(STORED_DAY_LABELS.index(key))
        else:
            logger.warning("Ignoring unknown weekday label %r in shop settings", label)
    return frozenset(days)


def encode_open_days(days: Sequence[int]) -> List[str]:
    return [STORED_DAY_LABELS[day] for day in sorted(days)]


class SupabaseBookingStore:
    """
    Client for the Supabase PostgREST endpoints.

    Uses the anon key for both the ``apikey`` header and the bearer token,
    as the public booking page does.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        default_policy: SchedulePolicy,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ):
        """
        Initialize the REST client.

        Args:
            url: Project URL, e.g. https://xyz.supabase.co
            api_key: Anon (or service) key
            default_policy: Hours used when a shop has no settings row
            session: Optional preconfigured requests session
            timeout: Per-request timeout in seconds
        """
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self.default_policy = default_policy
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    @property
    def timezone(self) -> str:
        return self.default_policy.timezone

    def get_shop_id(self, provider_id: str) -> str:
        rows = self._get("team_members", [("id", f"eq.{provider_id}"), ("select", "shop_id")])
        if not rows or not rows[0].get("shop_id"):
            raise ProviderNotFoundError(f"Provider not found: {provider_id}")
        return str(rows[0]["shop_id"])

    def get_schedule_policy(self, provider_id: str) -> SchedulePolicy:
        shop_id = self.get_shop_id(provider_id)
        rows = self._get(
            "shop_settings",
            [
                ("shop_id", f"eq.{shop_id}"),
                ("select", "start_time,end_time,open_days"),
                ("limit", "1"),
            ],
        )
        if not rows:
            logger.debug("Shop %s has no settings row, using defaults", shop_id)
            return self.default_policy

        return self._policy_from_row(rows[0])

    def _policy_from_row(self, row: Dict[str, Any]) -> SchedulePolicy:
        defaults = self.default_policy
        open_days = row.get("open_days")

        try:
            return SchedulePolicy.from_labels(
                # An empty list means closed every day; only a missing value falls back
                decode_open_days(open_days) if open_days is not None else defaults.open_days,
                row.get("start_time") or defaults.daily_start.strftime("%H:%M"),
                row.get("end_time") or defaults.daily_end.strftime("%H:%M"),
                slot_step_minutes=defaults.slot_step_minutes,
                timezone=self.timezone,
            )
        except ValueError as exc:
            raise StorageAPIError(f"Invalid shop settings {row!r}: {exc}") from exc

    def list_appointments(self, provider_id: str, day: date, timezone: str) -> List[AppointmentRecord]:
        target = local_date(day, timezone)
        day_start = pendulum.datetime(target.year, target.month, target.day, tz=timezone)
        day_end = day_start.add(days=1)

        rows = self._get(
            "appointments",
            [
                ("barber_id", f"eq.{provider_id}"),
                ("start_time", f"gte.{day_start.in_timezone('UTC').to_iso8601_string()}"),
                ("start_time", f"lt.{day_end.in_timezone('UTC').to_iso8601_string()}"),
                ("select", "id,barber_id,start_time,duration_minutes,client_id,services_json"),
                ("order", "start_time.asc"),
            ],
        )
        return [self._record_from_row(row, timezone) for row in rows]

    def insert_appointment(self, record: AppointmentRecord) -> AppointmentRecord:
        payload = {
            "shop_id": self.get_shop_id(record.provider_id),
            "barber_id": record.provider_id,
            "client_id": record.client_id,
            "start_time": record.start.to_iso8601_string(),
            "duration_minutes": record.duration_minutes,
            "services_json": [service.as_dict() for service in record.services],
        }

        response = self._send(
            "POST",
            "appointments",
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        if response.status_code == 409:
            raise BookingConflictError(
                f"Provider {record.provider_id} already booked around {record.start}: {response.text}"
            )
        rows = self._json(response)
        if not rows:
            raise StorageAPIError("Insert into appointments returned no row")
        return self._record_from_row(rows[0], self.timezone)

    def find_or_create_client(
        self, shop_id: str, name: str, phone: str, email: Optional[str] = None
    ) -> str:
        rows = self._get(
            "clients",
            [("shop_id", f"eq.{shop_id}"), ("phone", f"eq.{phone}"), ("select", "id"), ("limit", "1")],
        )
        if rows:
            return str(rows[0]["id"])

        payload: Dict[str, Any] = {"shop_id": shop_id, "name": name, "phone": phone}
        if email:
            payload["email"] = email
        response = self._send("POST", "clients", json=payload, headers={"Prefer": "return=representation"})
        created = self._json(response)
        if not created:
            raise StorageAPIError("Insert into clients returned no row")
        return str(created[0]["id"])

    def touch_client_last_visit(self, client_id: str, when: DateTime) -> None:
        response = self._send(
            "PATCH",
            "clients",
            params=[("id", f"eq.{client_id}")],
            json={"last_visit": when.in_timezone("UTC").to_iso8601_string()},
        )
        self._raise_for_status(response)

    def update_schedule_policy(self, target_id: str, policy: SchedulePolicy) -> None:
        """
        Update the settings row of a shop.

        Hours are stored per shop, so a provider id updates the hours of the
        provider's shop. The step is not stored.
        """
        rows = self._get("team_members", [("id", f"eq.{target_id}"), ("select", "shop_id")])
        shop_id = str(rows[0]["shop_id"]) if rows and rows[0].get("shop_id") else target_id

        response = self._send(
            "PATCH",
            "shop_settings",
            params=[("shop_id", f"eq.{shop_id}")],
            json={
                "open_days": encode_open_days(sorted(policy.open_days)),
                "start_time": policy.daily_start.strftime("%H:%M"),
                "end_time": policy.daily_end.strftime("%H:%M"),
            },
            headers={"Prefer": "return=representation"},
        )
        if not self._json(response):
            raise ProviderNotFoundError(f"No provider or shop settings for '{target_id}'")

    # -- HTTP plumbing -------------------------------------------------------

    def _get(self, table: str, params: List[Tuple[str, str]]) -> List[Dict[str, Any]]:
        return self._json(self._send("GET", table, params=params))

    def _send(self, method: str, table: str, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}/{table}"
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise StorageAPIError(f"Request to {table} failed: {e}") from e

    def _json(self, response: requests.Response) -> List[Dict[str, Any]]:
        self._raise_for_status(response)
        try:
            data = response.json()
        except ValueError as e:
            raise StorageAPIError(f"Invalid JSON from {response.url}: {e}") from e
        if isinstance(data, dict):
            return [data]
        return data

    @staticmethod
    def _raise_for_status(response: requests.Response) -> None:
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise StorageAPIError(f"Database API error ({response.status_code}): {response.text}") from e

    def _record_from_row(self, row: Dict[str, Any], timezone: str) -> AppointmentRecord:
        try:
            return AppointmentRecord(
                id=str(row["id"]),
                provider_id=str(row["barber_id"]),
                start=to_local(pendulum.parse(row["start_time"]), timezone),
                duration_minutes=int(row["duration_minutes"]),
                client_id=str(row["client_id"]) if row.get("client_id") is not None else None,
                services=tuple(row.get("services_json") or ()),
            )
        except (KeyError, ValueError, TypeError) as exc:
            raise StorageAPIError(f"Could not parse appointment row {row!r}: {exc}") from exc
