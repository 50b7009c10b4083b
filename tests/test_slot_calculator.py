"""
Tests for slot calculator.
"""

import pendulum
import pytest

from slotkeeper.domain.exceptions import InvalidRequestError
from slotkeeper.domain.models import AppointmentRecord, SchedulePolicy
from slotkeeper.domain.slot_calculator import SlotCalculator, generate_slots, is_past

TZ = "Europe/Berlin"
WEEKDAYS = ["mon", "tue", "wed", "thu", "fri"]


def at(value: str) -> pendulum.DateTime:
    return pendulum.parse(value, tz=TZ)


def labels(slots):
    return [slot.label() for slot in slots]


class TestSlotCalculator:
    """Tests for SlotCalculator."""

    def test_full_day_on_open_weekday(self):
        """A Wednesday with 09:00-18:00 hours and 60 min service yields 09:00..17:00."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "18:00", slot_step_minutes=30, timezone=TZ)
        calculator = SlotCalculator(policy=policy)

        slots = calculator.generate_slots(
            day=pendulum.date(2024, 11, 27),  # Wednesday
            duration_minutes=60,
            now=at("2024-11-25 08:00"),
        )

        expected = [f"{hour:02d}:{minute:02d}" for hour in range(9, 17) for minute in (0, 30)] + ["17:00"]
        assert labels(slots) == expected
        assert slots[-1].interval(60).end == at("2024-11-27 18:00")

    def test_last_slot_ends_before_closing(self):
        """For every duration the last generated slot ends at or before closing."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "18:00", slot_step_minutes=30, timezone=TZ)
        day = pendulum.date(2024, 11, 27)
        window = policy.business_window(day)

        for duration in (15, 30, 45, 60, 95, 240, 540):
            slots = generate_slots(policy, day, duration, at("2024-11-25 08:00"))
            assert slots, duration
            assert slots[-1].interval(duration).end <= window.end

    def test_service_longer_than_day_yields_nothing(self):
        """A service longer than the business window fits nowhere."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "10:00", timezone=TZ)

        assert generate_slots(policy, pendulum.date(2024, 11, 27), 90, at("2024-11-25 08:00")) == []

    def test_feasibility_boundary(self):
        """09:00-10:00, 45 min, step 30: only 09:00 fits before closing."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "10:00", slot_step_minutes=30, timezone=TZ)

        slots = generate_slots(policy, pendulum.date(2024, 11, 27), 45, at("2024-11-25 08:00"))

        assert labels(slots) == ["09:00"]

    def test_closed_days_are_empty(self):
        """Weekends are empty when the shop only opens on weekdays."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "18:00", timezone=TZ)
        now = at("2024-11-25 08:00")

        assert generate_slots(policy, pendulum.date(2024, 11, 30), 30, now) == []  # Saturday
        assert generate_slots(policy, pendulum.date(2024, 12, 1), 30, now) == []  # Sunday

    def test_permanently_closed_provider(self):
        """An empty open-days set yields no slots on any day, without errors."""
        policy = SchedulePolicy.from_labels([], "09:00", "18:00", timezone=TZ)
        now = at("2024-11-25 08:00")

        for offset in range(7):
            assert generate_slots(policy, pendulum.date(2024, 11, 25).add(days=offset), 30, now) == []

    def test_past_slots_excluded_today(self):
        """At 14:00 today, 14:00 and earlier are gone and 14:30 is offered."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "20:00", slot_step_minutes=30, timezone=TZ)

        slots = labels(generate_slots(policy, pendulum.date(2024, 11, 27), 30, at("2024-11-27 14:00")))

        assert "14:30" in slots
        assert "14:00" not in slots
        assert slots[0] == "14:30"
        assert slots[-1] == "19:30"

    def test_seconds_of_now_are_ignored(self):
        """Seconds are ignored: at 13:59:59 the 14:00 slot is still offered."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "20:00", slot_step_minutes=30, timezone=TZ)

        slots = labels(generate_slots(policy, pendulum.date(2024, 11, 27), 30, at("2024-11-27 13:59:59")))

        assert slots[0] == "14:00"

    def test_future_day_ignores_current_time(self):
        """Tomorrow's 09:00 is offered whatever the time is today."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "20:00", slot_step_minutes=30, timezone=TZ)

        slots = labels(generate_slots(policy, pendulum.date(2024, 11, 28), 30, at("2024-11-27 19:45")))

        assert slots[0] == "09:00"

    def test_earlier_day_is_empty(self):
        """A day that has already passed has no slots."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "20:00", timezone=TZ)

        assert generate_slots(policy, pendulum.date(2024, 11, 26), 30, at("2024-11-27 08:00")) == []

    def test_now_in_other_timezone(self):
        """'Today' is decided in the shop's timezone, not in now's."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "20:00", timezone=TZ)
        now = pendulum.parse("2024-11-27 13:00", tz="UTC")  # 14:00 in Berlin

        slots = labels(generate_slots(policy, pendulum.date(2024, 11, 27), 30, now))

        assert slots[0] == "14:30"

    def test_naive_now_is_shop_time(self):
        """A naive pendulum 'now' is read as wall-clock time in the shop timezone."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "20:00", timezone=TZ)

        slots = labels(generate_slots(policy, pendulum.date(2024, 11, 27), 30, pendulum.naive(2024, 11, 27, 14, 0)))

        assert slots[0] == "14:30"

    def test_custom_step(self):
        """Slots follow the policy's granularity."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "10:00", slot_step_minutes=15, timezone=TZ)

        slots = generate_slots(policy, pendulum.date(2024, 11, 27), 30, at("2024-11-25 08:00"))

        assert labels(slots) == ["09:00", "09:15", "09:30"]

    def test_results_are_recomputed(self):
        """Each call returns a fresh, identical list."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "12:00", timezone=TZ)
        calculator = SlotCalculator(policy)
        day = pendulum.date(2024, 11, 27)
        now = at("2024-11-25 08:00")

        first = calculator.generate_slots(day, 30, now)
        second = calculator.generate_slots(day, 30, now)

        assert first == second
        assert first is not second

    @pytest.mark.parametrize("duration", [0, -15, "30", None, 2.5])
    def test_invalid_duration_raises(self, duration):
        """Malformed durations are caller errors."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "18:00", timezone=TZ)

        with pytest.raises(InvalidRequestError):
            generate_slots(policy, pendulum.date(2024, 11, 27), duration, at("2024-11-25 08:00"))

    def test_find_available_slots_filters_bookings(self):
        """Generation and conflict filtering combine in one call."""
        policy = SchedulePolicy.from_labels(WEEKDAYS, "09:00", "11:00", timezone=TZ)
        existing = [
            AppointmentRecord(id="a1", provider_id="p1", start=at("2024-11-27 09:30"), duration_minutes=60),
        ]

        slots = SlotCalculator(policy).find_available_slots(
            pendulum.date(2024, 11, 27), 30, existing, at("2024-11-25 08:00")
        )

        assert labels(slots) == ["09:00", "10:30"]


class TestIsPast:
    """Tests for the past-time rule shared by generator and validator."""

    def test_rule(self):
        now = at("2024-11-27 14:00:30")

        assert is_past(at("2024-11-27 13:30"), now)
        assert is_past(at("2024-11-27 14:00"), now)
        assert not is_past(at("2024-11-27 14:01"), now)
