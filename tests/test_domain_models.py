"""
Tests for domain models.
"""

from datetime import time

import pendulum
import pytest

from slotkeeper.domain.models import (
    AppointmentRecord,
    BookingDecision,
    CandidateSlot,
    RejectionReason,
    SchedulePolicy,
    ServiceItem,
    TimeRange,
    overlaps,
    parse_time_of_day,
    parse_weekday,
    to_local,
)

TZ = "Europe/Berlin"


def at(value: str) -> pendulum.DateTime:
    return pendulum.parse(value, tz=TZ)


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        start = at("2024-11-25 09:00")
        end = at("2024-11-25 17:00")

        tr = TimeRange(start=start, end=end)

        assert tr.start == start
        assert tr.end == end
        assert tr.duration_minutes() == 480  # 8 hours

    def test_invalid_time_range_raises_error(self):
        """Test that creating an invalid time range raises ValueError."""
        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            TimeRange(start=at("2024-11-25 17:00"), end=at("2024-11-25 09:00"))

    def test_empty_time_range_raises_error(self):
        """A zero-length interval breaks the end > start invariant."""
        with pytest.raises(ValueError):
            TimeRange(start=at("2024-11-25 09:00"), end=at("2024-11-25 09:00"))

    def test_from_duration(self):
        """Test building a range from a start and a duration."""
        tr = TimeRange.from_duration(at("2024-11-25 09:30"), 45)

        assert tr.end == at("2024-11-25 10:15")
        assert tr.duration_minutes() == 45

    def test_overlaps(self):
        """Test overlap detection."""
        tr1 = TimeRange(start=at("2024-11-25 09:00"), end=at("2024-11-25 12:00"))
        tr2 = TimeRange(start=at("2024-11-25 11:00"), end=at("2024-11-25 14:00"))
        tr3 = TimeRange(start=at("2024-11-25 14:00"), end=at("2024-11-25 17:00"))

        assert tr1.overlaps(tr2)
        assert tr2.overlaps(tr1)
        assert not tr1.overlaps(tr3)

    def test_touching_ranges_do_not_overlap(self):
        """Half-open ranges sharing a boundary are not in conflict."""
        first = TimeRange(start=at("2024-11-25 10:00"), end=at("2024-11-25 10:30"))
        second = TimeRange(start=at("2024-11-25 10:30"), end=at("2024-11-25 11:00"))

        assert not overlaps(first, second)
        assert not overlaps(second, first)

    def test_overlap_is_symmetric(self):
        """overlaps(a, b) == overlaps(b, a) for a mix of layouts."""
        ranges = [
            TimeRange(start=at("2024-11-25 09:00"), end=at("2024-11-25 10:00")),
            TimeRange(start=at("2024-11-25 09:30"), end=at("2024-11-25 09:45")),
            TimeRange(start=at("2024-11-25 10:00"), end=at("2024-11-25 11:00")),
            TimeRange(start=at("2024-11-25 08:00"), end=at("2024-11-25 12:00")),
            TimeRange(start=at("2024-11-26 09:00"), end=at("2024-11-26 10:00")),
        ]

        for a in ranges:
            for b in ranges:
                assert overlaps(a, b) == overlaps(b, a)

    def test_overlap_across_timezones(self):
        """Overlap compares absolute instants, not wall-clock values."""
        berlin = TimeRange(start=at("2024-11-25 10:00"), end=at("2024-11-25 11:00"))
        utc = TimeRange(
            start=pendulum.parse("2024-11-25 09:30", tz="UTC"),
            end=pendulum.parse("2024-11-25 10:30", tz="UTC"),
        )

        assert berlin.overlaps(utc)

    def test_contains(self):
        """Test containment of one range in another."""
        window = TimeRange(start=at("2024-11-25 09:00"), end=at("2024-11-25 18:00"))

        assert window.contains(TimeRange(start=at("2024-11-25 17:00"), end=at("2024-11-25 18:00")))
        assert not window.contains(TimeRange(start=at("2024-11-25 17:30"), end=at("2024-11-25 18:30")))

    def test_intersect(self):
        """Test intersection calculation."""
        tr1 = TimeRange(start=at("2024-11-25 09:00"), end=at("2024-11-25 12:00"))
        tr2 = TimeRange(start=at("2024-11-25 11:00"), end=at("2024-11-25 14:00"))

        intersection = tr1.intersect(tr2)

        assert intersection is not None
        assert intersection.start == at("2024-11-25 11:00")
        assert intersection.end == at("2024-11-25 12:00")

    def test_no_intersection(self):
        """Test that non-overlapping ranges return None for intersection."""
        tr1 = TimeRange(start=at("2024-11-25 09:00"), end=at("2024-11-25 12:00"))
        tr2 = TimeRange(start=at("2024-11-25 14:00"), end=at("2024-11-25 17:00"))

        assert tr1.intersect(tr2) is None


class TestSchedulePolicy:
    """Tests for SchedulePolicy model."""

    def test_is_open(self):
        """Test open-day detection."""
        policy = SchedulePolicy.from_labels(["mon", "tue", "wed", "thu", "fri"], "09:00", "18:00", timezone=TZ)

        assert policy.is_open(pendulum.date(2024, 11, 25))  # Monday
        assert policy.is_open(pendulum.date(2024, 11, 29))  # Friday
        assert not policy.is_open(pendulum.date(2024, 11, 30))  # Saturday
        assert not policy.is_open(pendulum.date(2024, 12, 1))  # Sunday

    def test_empty_open_days_is_always_closed(self):
        """A provider without open days is closed every day."""
        policy = SchedulePolicy(open_days=frozenset(), daily_start=time(9), daily_end=time(18), timezone=TZ)

        for offset in range(7):
            assert not policy.is_open(pendulum.date(2024, 11, 25).add(days=offset))

    def test_is_open_uses_local_date_of_timestamps(self):
        """Timestamps are judged by their calendar day in the policy timezone."""
        policy = SchedulePolicy.from_labels(["sat"], "09:00", "18:00", timezone=TZ)

        # Friday 23:30 UTC is already Saturday in Berlin
        assert policy.is_open(pendulum.parse("2024-11-29 23:30", tz="UTC"))

    def test_business_window(self):
        """Test the window is built on the given day in the policy timezone."""
        policy = SchedulePolicy.from_labels(["wed"], "09:30", "18:15", timezone=TZ)

        window = policy.business_window(pendulum.date(2024, 11, 27))

        assert window.start == at("2024-11-27 09:30")
        assert window.end == at("2024-11-27 18:15")

    def test_business_window_on_closed_day_raises(self):
        """Callers must check is_open first."""
        policy = SchedulePolicy.from_labels(["wed"], "09:00", "18:00", timezone=TZ)

        with pytest.raises(ValueError, match="Closed"):
            policy.business_window(pendulum.date(2024, 11, 28))

    def test_start_must_precede_end(self):
        """Test the dailyStart < dailyEnd invariant."""
        with pytest.raises(ValueError, match="must be before daily end"):
            SchedulePolicy.from_labels(["mon"], "18:00", "09:00")

    @pytest.mark.parametrize("step", [0, -30])
    def test_step_must_be_positive(self, step):
        """Test the slotStepMinutes > 0 invariant."""
        with pytest.raises(ValueError, match="slot_step_minutes"):
            SchedulePolicy.from_labels(["mon"], "09:00", "18:00", slot_step_minutes=step)

    def test_day_labels(self):
        """Open days render as labels in weekday order."""
        policy = SchedulePolicy(open_days=frozenset({4, 0, 2}), daily_start=time(9), daily_end=time(18))

        assert policy.day_labels() == ["mon", "wed", "fri"]


class TestParsing:
    """Tests for weekday and time-of-day parsing."""

    def test_parse_weekday(self):
        assert parse_weekday("mon") == 0
        assert parse_weekday("Sunday") == 6
        assert parse_weekday(3) == 3

    @pytest.mark.parametrize("value", [7, -1, "xyz", True])
    def test_parse_weekday_invalid(self, value):
        with pytest.raises(ValueError):
            parse_weekday(value)

    def test_parse_time_of_day(self):
        assert parse_time_of_day("09:00") == time(9, 0)
        assert parse_time_of_day("18:30:00") == time(18, 30)

    @pytest.mark.parametrize("value", ["9", "25:00", "ab:cd"])
    def test_parse_time_of_day_invalid(self, value):
        with pytest.raises(ValueError):
            parse_time_of_day(value)

    def test_naive_timestamps_are_local(self):
        """Naive timestamps are read as wall-clock time in the given zone."""
        local = to_local(pendulum.naive(2024, 11, 27, 10, 0), TZ)

        assert local == at("2024-11-27 10:00")
        assert local.timezone_name == TZ


class TestRecordsAndDecisions:
    """Tests for appointment records, slots and decisions."""

    def test_appointment_interval(self):
        record = AppointmentRecord(id="a1", provider_id="p1", start=at("2024-11-27 10:00"), duration_minutes=30)

        assert record.interval == TimeRange(start=at("2024-11-27 10:00"), end=at("2024-11-27 10:30"))

    def test_appointment_duration_must_be_positive(self):
        with pytest.raises(ValueError):
            AppointmentRecord(id="a1", provider_id="p1", start=at("2024-11-27 10:00"), duration_minutes=0)

    def test_slot_label_is_zero_padded(self):
        assert CandidateSlot(start=at("2024-11-27 09:05")).label() == "09:05"
        assert CandidateSlot(start=at("2024-11-27 14:30")).label() == "14:30"

    def test_decisions(self):
        accepted = BookingDecision.accept()
        conflict = BookingDecision.reject(RejectionReason.SLOT_CONFLICT)
        closed = BookingDecision.reject(RejectionReason.SHOP_CLOSED)

        assert accepted.accepted
        assert not conflict.accepted
        assert conflict.should_refresh_slots
        assert not closed.should_refresh_slots
        assert "just taken" in conflict.message

    def test_services_are_normalised(self):
        """Names and booking-page objects both become service items."""
        record = AppointmentRecord(
            id="a1",
            provider_id="p1",
            start=at("2024-11-27 10:00"),
            duration_minutes=45,
            services=("Corte", {"id": 2, "name": "Barba", "price": 25, "duration_minutes": 15}),
        )

        assert record.services == (
            ServiceItem(name="Corte"),
            ServiceItem(name="Barba", id=2, price=25, duration_minutes=15),
        )
        assert record.services[1].as_dict() == {"id": 2, "name": "Barba", "price": 25, "duration_minutes": 15}

    def test_service_needs_a_name(self):
        with pytest.raises(ValueError):
            ServiceItem.from_value({"price": 10})
