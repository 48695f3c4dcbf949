"""Tests for candidate slot generation."""

from datetime import date, time, timedelta

import pytest

from clinic_scheduling.config import Settings
from clinic_scheduling.scheduling.errors import InvalidRequestError
from clinic_scheduling.scheduling.models import AvailabilityRule, Practitioner, Room, TimeInterval
from clinic_scheduling.scheduling.slots import SlotGenerator, iter_days
from tests.conftest import CLINIC, MONDAY, at, make_appt

HALF_HOUR = timedelta(minutes=30)


@pytest.fixture
def gen(settings):
    return SlotGenerator(settings)


@pytest.fixture
def doc():
    return Practitioner(id="doc-1", clinic_id=CLINIC, name="Ada Rossi")


@pytest.fixture
def room():
    return Room(id="room-1", clinic_id=CLINIC, name="Room 1")


def _booked(*appts):
    return [b for a in appts for b in a.booked_intervals()]


# --------------------------------------------------------- slot generation

class TestSlotGeneration:
    def test_default_day_at_15_minute_steps(self, gen, doc, room):
        # 08:00-18:00, starts every 15 min up to 17:30
        slots = list(gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR))
        assert len(slots) == 39
        assert slots[0].interval.start == at(8)
        assert slots[-1].interval.start == at(17, 30)
        assert slots[-1].interval.end == at(18)

    def test_default_day_at_30_minute_steps(self, doc, room):
        gen = SlotGenerator(Settings(_env_file=None, slot_granularity_minutes=30))
        slots = list(gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR))
        assert len(slots) == 20

    def test_slots_are_in_start_order(self, gen, doc, room):
        slots = list(gen.generate(doc, room, MONDAY, MONDAY + timedelta(days=2), HALF_HOUR))
        starts = [s.interval.start for s in slots]
        assert starts == sorted(starts)
        assert len(slots) == 39 * 3

    def test_booking_removes_overlapping_starts(self, gen, doc, room):
        booked = _booked(make_appt("doc-1", "room-1", at(10)))
        slots = list(gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR, booked))
        starts = {s.interval.start for s in slots}
        assert len(slots) == 36
        assert not starts & {at(9, 45), at(10), at(10, 15)}
        # touching the booking is fine
        assert at(9, 30) in starts
        assert at(10, 30) in starts

    def test_room_used_by_another_practitioner_is_busy(self, gen, doc, room):
        booked = _booked(make_appt("doc-2", "room-1", at(10)))
        slots = list(gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR, booked))
        assert len(slots) == 36

    def test_practitioner_busy_in_another_room(self, gen, doc, room):
        booked = _booked(make_appt("doc-1", "room-2", at(10)))
        slots = list(gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR, booked))
        assert len(slots) == 36

    def test_unrelated_bookings_ignored(self, gen, doc, room):
        booked = _booked(make_appt("doc-2", "room-2", at(10)))
        slots = list(gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR, booked))
        assert len(slots) == 39

    def test_duration_longer_than_day(self, gen, doc, room):
        slots = list(gen.generate(doc, room, MONDAY, MONDAY, timedelta(hours=11)))
        assert slots == []

    def test_inverted_window_is_empty(self, gen, doc, room):
        slots = list(gen.generate(doc, room, MONDAY, MONDAY - timedelta(days=1), HALF_HOUR))
        assert slots == []

    def test_zero_duration_raises_on_call(self, gen, doc, room):
        # raised before the result is iterated
        with pytest.raises(InvalidRequestError):
            gen.generate(doc, room, MONDAY, MONDAY, timedelta(0))

    def test_excluded_weekday_skipped(self, gen, doc, room):
        tuesday = MONDAY + timedelta(days=1)
        slots = list(gen.generate(doc, room, MONDAY, tuesday, HALF_HOUR, excluded_days={0}))
        assert {s.interval.day for s in slots} == {tuesday}

    def test_candidate_carries_resource_details(self, gen, doc, room):
        slot = next(gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR))
        assert slot.available
        assert slot.practitioner_name == "Ada Rossi"
        assert slot.room_name == "Room 1"
        assert slot.conflict_reasons == []


class TestIncludeUnavailable:
    def test_busy_slots_flagged_with_reasons(self, gen, doc, room):
        booked = _booked(make_appt("doc-1", "room-1", at(10)))
        slots = list(
            gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR, booked, include_unavailable=True)
        )
        assert len(slots) == 39
        busy = [s for s in slots if not s.available]
        assert [s.interval.start for s in busy] == [at(9, 45), at(10), at(10, 15)]
        assert len(busy[0].conflict_reasons) == 2
        assert "Practitioner doc-1" in busy[0].conflict_reasons[0]
        assert "Room room-1" in busy[0].conflict_reasons[1]


# ------------------------------------------------------ availability rules

class TestAvailabilityRules:
    def test_practitioner_rule_limits_window(self, gen, room):
        doc = Practitioner(
            id="doc-1",
            clinic_id=CLINIC,
            availability=[AvailabilityRule(weekday=0, start=time(9), end=time(12))],
        )
        slots = list(gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR))
        assert len(slots) == 11
        assert slots[0].interval.start == at(9)
        assert slots[-1].interval.end == at(12)

    def test_no_rule_for_weekday_means_day_off(self, gen, room):
        doc = Practitioner(
            id="doc-1",
            clinic_id=CLINIC,
            availability=[AvailabilityRule(weekday=0, start=time(9), end=time(12))],
        )
        tuesday = MONDAY + timedelta(days=1)
        assert list(gen.generate(doc, room, tuesday, tuesday, HALF_HOUR)) == []

    def test_inactive_rule_ignored(self, gen, room):
        doc = Practitioner(
            id="doc-1",
            clinic_id=CLINIC,
            availability=[AvailabilityRule(weekday=0, start=time(9), end=time(12), is_active=False)],
        )
        assert list(gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR)) == []

    def test_room_window_intersects_practitioner_hours(self, gen, doc):
        room = Room(
            id="room-1",
            clinic_id=CLINIC,
            availability=[AvailabilityRule(weekday=0, start=time(13), end=time(15))],
        )
        slots = list(gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR))
        assert len(slots) == 7
        assert slots[0].interval.start == at(13)

    def test_split_shift(self, gen, room):
        doc = Practitioner(
            id="doc-1",
            clinic_id=CLINIC,
            availability=[
                AvailabilityRule(weekday=0, start=time(14), end=time(15)),
                AvailabilityRule(weekday=0, start=time(8), end=time(9)),
            ],
        )
        slots = list(gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR))
        assert [s.interval.start for s in slots] == [
            at(8), at(8, 15), at(8, 30), at(14), at(14, 15), at(14, 30),
        ]

    def test_overlapping_rules_merged(self, gen, room):
        doc = Practitioner(
            id="doc-1",
            clinic_id=CLINIC,
            availability=[
                AvailabilityRule(weekday=0, start=time(10), end=time(14)),
                AvailabilityRule(weekday=0, start=time(8), end=time(12)),
            ],
        )
        starts = [s.interval.start for s in gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR)]
        # one 08:00-14:00 window: starts 08:00..13:30
        assert len(starts) == 23
        assert len(set(starts)) == 23
        assert starts == sorted(starts)
        assert gen.resource_windows(doc.availability, MONDAY) == [
            TimeInterval(start=at(8), end=at(14)),
        ]

    def test_touching_rules_form_one_window(self, gen, room):
        doc = Practitioner(
            id="doc-1",
            clinic_id=CLINIC,
            availability=[
                AvailabilityRule(weekday=0, start=time(8), end=time(10)),
                AvailabilityRule(weekday=0, start=time(10), end=time(12)),
            ],
        )
        starts = [s.interval.start for s in gen.generate(doc, room, MONDAY, MONDAY, HALF_HOUR)]
        assert len(starts) == 15
        assert at(9, 45) in starts

    def test_round_the_clock_clinic(self, doc, room):
        settings = Settings(
            _env_file=None,
            working_day_start=time(0),
            working_day_end=time(0),
            slot_granularity_minutes=5,
        )
        gen = SlotGenerator(settings)
        slots = list(gen.generate(doc, room, MONDAY, MONDAY, timedelta(hours=1)))
        assert len(slots) == 277
        assert slots[-1].interval.start == at(23)

    def test_within_working_hours(self, gen):
        rules = [AvailabilityRule(weekday=0, start=time(9), end=time(12))]
        assert gen.within_working_hours(rules, make_appt("d", "r", at(11, 30)).interval)
        assert not gen.within_working_hours(rules, make_appt("d", "r", at(11, 45)).interval)
        assert gen.within_working_hours([], make_appt("d", "r", at(17, 30)).interval)
        assert not gen.within_working_hours([], make_appt("d", "r", at(19)).interval)


def test_iter_days_inclusive():
    days = list(iter_days(MONDAY, date(2026, 3, 4)))
    assert days == [MONDAY, date(2026, 3, 3), date(2026, 3, 4)]
