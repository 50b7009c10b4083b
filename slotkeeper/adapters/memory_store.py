"""
In-process booking store, seedable from a JSON data file.

Used by the CLI's offline mode and by the tests. Inserts are serialised under
a lock and re-check overlaps, which gives the same at-most-one-winner
guarantee a database exclusion constraint gives the hosted store.
"""

import json
import logging
import threading
import uuid
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import BookingConflictError, PersistenceError, ProviderNotFoundError
from ..domain.models import AppointmentRecord, SchedulePolicy, local_date, to_local
from ..services.booking_service import appointment_to_dict

logger = logging.getLogger(__name__)

SAMPLE_DATA_FILE = Path(__file__).parent / "sample_shop_data.json"


class InMemoryBookingStore:
    """
    Dictionary-backed store for shops, providers, clients and appointments.

    A provider's working hours come from its own policy, else from its shop's
    policy, else from ``default_policy``.
    """

    def __init__(self, default_policy: SchedulePolicy):
        self.default_policy = default_policy
        # Zone of naive timestamps in data files
        self.timezone = default_policy.timezone
        self._lock = threading.RLock()
        self._shop_policies: Dict[str, Optional[SchedulePolicy]] = {}
        self._providers: Dict[str, Dict[str, Any]] = {}
        self._clients: Dict[str, Dict[str, Any]] = {}
        self._appointments: List[AppointmentRecord] = []

    # -- seeding -----------------------------------------------------------

    def add_shop(self, shop_id: str, policy: Optional[SchedulePolicy] = None) -> None:
        with self._lock:
            self._shop_policies[shop_id] = policy

    def add_provider(
        self,
        provider_id: str,
        shop_id: str,
        name: str = "",
        policy: Optional[SchedulePolicy] = None,
    ) -> None:
        with self._lock:
            if shop_id not in self._shop_policies:
                self._shop_policies[shop_id] = None
            self._providers[provider_id] = {"shop_id": shop_id, "name": name, "policy": policy}

    def add_client(self, client_id: str, shop_id: str, name: str, phone: str, email: Optional[str] = None) -> None:
        with self._lock:
            self._clients[client_id] = {
                "shop_id": shop_id,
                "name": name,
                "phone": phone,
                "email": email,
                "last_visit": None,
            }

    def add_appointment(self, record: AppointmentRecord) -> None:
        """Seed an appointment without the overlap check."""
        with self._lock:
            self._appointments.append(record)

    # -- BookingStore protocol ---------------------------------------------

    def get_shop_id(self, provider_id: str) -> str:
        with self._lock:
            return self._provider(provider_id)["shop_id"]

    def get_schedule_policy(self, provider_id: str) -> SchedulePolicy:
        with self._lock:
            provider = self._provider(provider_id)
            if provider["policy"] is not None:
                return provider["policy"]
            shop_policy = self._shop_policies.get(provider["shop_id"])
            if shop_policy is not None:
                return shop_policy
            return self.default_policy

    def list_appointments(self, provider_id: str, day: date, timezone: str) -> List[AppointmentRecord]:
        target = local_date(day, timezone)
        with self._lock:
            return sorted(
                (
                    appt for appt in self._appointments
                    if appt.provider_id == provider_id
                    and to_local(appt.start, timezone).date() == target
                ),
                key=lambda appt: appt.start,
            )

    def insert_appointment(self, record: AppointmentRecord) -> AppointmentRecord:
        self._provider(record.provider_id)
        stored = record if record.id else replace(record, id=uuid.uuid4().hex)

        with self._lock:
            for appt in self._appointments:
                if appt.provider_id == record.provider_id and appt.interval.overlaps(record.interval):
                    raise BookingConflictError(
                        f"Provider {record.provider_id} already booked at {appt.interval}"
                    )
            self._appointments.append(stored)

        return stored

    def find_or_create_client(
        self, shop_id: str, name: str, phone: str, email: Optional[str] = None
    ) -> str:
        with self._lock:
            for client_id, client in self._clients.items():
                if client["shop_id"] == shop_id and client["phone"] == phone:
                    return client_id

            client_id = uuid.uuid4().hex
            self.add_client(client_id, shop_id, name, phone, email)
            logger.debug("Created client %s for shop %s", client_id, shop_id)
            return client_id

    def touch_client_last_visit(self, client_id: str, when: DateTime) -> None:
        with self._lock:
            if client_id not in self._clients:
                raise PersistenceError(f"Unknown client: {client_id}")
            self._clients[client_id]["last_visit"] = when

    def update_schedule_policy(self, target_id: str, policy: SchedulePolicy) -> None:
        with self._lock:
            if target_id in self._providers:
                self._providers[target_id]["policy"] = policy
            elif target_id in self._shop_policies:
                self._shop_policies[target_id] = policy
            else:
                raise ProviderNotFoundError(f"No provider or shop with id '{target_id}'")

    # -- helpers -----------------------------------------------------------

    def get_client(self, client_id: str) -> Dict[str, Any]:
        return dict(self._clients[client_id])

    def provider_ids(self) -> List[str]:
        return sorted(self._providers)

    def _provider(self, provider_id: str) -> Dict[str, Any]:
        try:
            return self._providers[provider_id]
        except KeyError:
            raise ProviderNotFoundError(f"Provider not found: {provider_id}") from None

    # -- JSON data files -----------------------------------------------------

    @classmethod
    def from_json_file(cls, data_file: Path, default_policy: SchedulePolicy) -> "InMemoryBookingStore":
        """
        Load shops, providers, clients and appointments from a JSON file.

        Raises:
            FileNotFoundError: If the data file doesn't exist
            ValueError: If the file content is invalid
        """
        if not data_file.exists():
            raise FileNotFoundError(f"Data file not found: {data_file}")

        try:
            with open(data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {data_file}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Data file must contain an object at the root level.")

        timezone = data.get("timezone", default_policy.timezone)
        store = cls(default_policy=default_policy)
        store.timezone = timezone

        try:
            for shop in data.get("shops", []):
                store.add_shop(str(shop["id"]), _policy_from_dict(shop, timezone, default_policy))

            for provider in data.get("providers", []):
                store.add_provider(
                    str(provider["id"]),
                    str(provider["shop_id"]),
                    name=provider.get("name", ""),
                    policy=_policy_from_dict(provider, timezone, default_policy),
                )

            for client in data.get("clients", []):
                store.add_client(
                    str(client["id"]),
                    str(client["shop_id"]),
                    client["name"],
                    client["phone"],
                    client.get("email"),
                )

            for appt in data.get("appointments", []):
                store.add_appointment(
                    AppointmentRecord(
                        id=str(appt["id"]),
                        provider_id=str(appt["provider_id"]),
                        start=to_local(pendulum.parse(appt["start"], tz=timezone), timezone),
                        duration_minutes=int(appt["duration_minutes"]),
                        client_id=appt.get("client_id"),
                        services=tuple(appt.get("services", ())),
                    )
                )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed record in {data_file}: {exc!r}") from exc

        return store

    def dump_json_file(self, data_file: Path) -> None:
        """Write the current state back to a JSON data file."""
        with self._lock:
            data = {
                "timezone": self.timezone,
                "shops": [
                    {"id": shop_id, **_policy_to_dict(policy)}
                    for shop_id, policy in self._shop_policies.items()
                ],
                "providers": [
                    {
                        "id": provider_id,
                        "shop_id": provider["shop_id"],
                        "name": provider["name"],
                        **_policy_to_dict(provider["policy"]),
                    }
                    for provider_id, provider in self._providers.items()
                ],
                "clients": [
                    {
                        "id": client_id,
                        "shop_id": client["shop_id"],
                        "name": client["name"],
                        "phone": client["phone"],
                        "email": client["email"],
                    }
                    for client_id, client in self._clients.items()
                ],
                "appointments": [appointment_to_dict(appt) for appt in self._appointments],
            }

        data_file.parent.mkdir(parents=True, exist_ok=True)
        with open(data_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)


def _policy_from_dict(
    entry: Dict[str, Any], timezone: str, default_policy: SchedulePolicy
) -> Optional[SchedulePolicy]:
    if "open_days" not in entry and "start_time" not in entry:
        return None

    return SchedulePolicy.from_labels(
        entry.get("open_days", sorted(default_policy.open_days)),
        entry.get("start_time", default_policy.daily_start.strftime("%H:%M")),
        entry.get("end_time", default_policy.daily_end.strftime("%H:%M")),
        slot_step_minutes=int(entry.get("slot_step_minutes", default_policy.slot_step_minutes)),
        timezone=entry.get("timezone", timezone),
    )


def _policy_to_dict(policy: Optional[SchedulePolicy]) -> Dict[str, Any]:
    if policy is None:
        return {}
    return {
        "open_days": policy.day_labels(),
        "start_time": policy.daily_start.strftime("%H:%M"),
        "end_time": policy.daily_end.strftime("%H:%M"),
        "slot_step_minutes": policy.slot_step_minutes,
        "timezone": policy.timezone,
    }
