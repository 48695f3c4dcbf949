"""Tests for double-booking and availability conflict detection."""

from datetime import time

import pytest

from clinic_scheduling.scheduling.conflicts import ConflictDetector, range_days
from clinic_scheduling.scheduling.models import (
    AppointmentStatus,
    AvailabilityRule,
    ConflictSeverity,
    ConflictType,
    Practitioner,
    TimeInterval,
)
from tests.conftest import CLINIC, MONDAY, at, make_appt

DAY = TimeInterval.for_days(MONDAY, MONDAY)


@pytest.fixture
def detector(settings):
    return ConflictDetector(settings=settings)


class TestDoubleBooking:
    def test_overlapping_practitioner_appointments(self, detector):
        a1 = make_appt("doc-1", "room-1", at(10), appt_id="a1")
        a2 = make_appt("doc-1", "room-2", at(10, 15), appt_id="a2")
        conflicts = detector.detect([a1, a2], DAY)

        assert len(conflicts) == 1
        c = conflicts[0]
        assert c.kind == ConflictType.PRACTITIONER_DOUBLE_BOOKING
        assert c.severity == ConflictSeverity.HIGH
        assert c.affected_appointment_ids == ["a1", "a2"]
        assert c.affected_resource_ids == ["doc-1"]
        assert c.at_time == at(10, 15)

    def test_back_to_back_is_not_a_conflict(self, detector):
        a1 = make_appt("doc-1", "room-1", at(10))
        a2 = make_appt("doc-1", "room-1", at(10, 30))
        assert detector.detect([a1, a2], DAY) == []

    def test_cancelled_appointments_ignored(self, detector):
        a1 = make_appt("doc-1", "room-1", at(10))
        a2 = make_appt("doc-1", "room-1", at(10), status=AppointmentStatus.CANCELLED)
        a3 = make_appt("doc-1", "room-1", at(10), status=AppointmentStatus.NO_SHOW)
        assert detector.detect([a1, a2, a3], DAY) == []

    def test_room_double_booking(self, detector):
        a1 = make_appt("doc-1", "room-1", at(10), appt_id="a1")
        a2 = make_appt("doc-2", "room-1", at(10, 15), appt_id="a2")
        conflicts = detector.detect([a1, a2], DAY)
        assert [c.kind for c in conflicts] == [ConflictType.ROOM_DOUBLE_BOOKING]
        assert conflicts[0].affected_resource_ids == ["room-1"]

    def test_same_practitioner_and_room_reports_both(self, detector):
        a1 = make_appt("doc-1", "room-1", at(10))
        a2 = make_appt("doc-1", "room-1", at(10, 15))
        kinds = {c.kind for c in detector.detect([a1, a2], DAY)}
        assert kinds == {ConflictType.PRACTITIONER_DOUBLE_BOOKING, ConflictType.ROOM_DOUBLE_BOOKING}

    def test_nested_appointments(self, detector):
        long = make_appt("doc-1", "room-1", at(9), minutes=180, appt_id="long")
        a2 = make_appt("doc-1", "room-2", at(10), appt_id="a2")
        a3 = make_appt("doc-1", "room-2", at(11), appt_id="a3")
        conflicts = detector.detect([a3, a2, long], DAY)
        assert [c.affected_appointment_ids for c in conflicts] == [["long", "a2"], ["long", "a3"]]

    def test_chained_overlaps_pair_neighbours(self, detector):
        a = make_appt("doc-1", "room-1", at(10), minutes=60, appt_id="a")
        b = make_appt("doc-1", "room-2", at(10, 15), appt_id="b")
        c = make_appt("doc-1", "room-3", at(10, 30), minutes=20, appt_id="c")
        conflicts = detector.detect([c, b, a], DAY)
        assert [x.affected_appointment_ids for x in conflicts] == [["a", "b"], ["b", "c"]]
        assert [x.at_time for x in conflicts] == [at(10, 15), at(10, 30)]

    def test_outside_range_ignored(self, detector):
        a1 = make_appt("doc-1", "room-1", at(10))
        a2 = make_appt("doc-1", "room-1", at(10, 15))
        tuesday = TimeInterval.for_days(MONDAY.replace(day=3), MONDAY.replace(day=3))
        assert detector.detect([a1, a2], tuesday) == []


class TestResolution:
    def test_resolvable_conflict_suggests_move(self, detector):
        a1 = make_appt("doc-1", "room-1", at(10), appt_id="a1")
        a2 = make_appt("doc-1", "room-2", at(10, 15), appt_id="a2")
        conflict = detector.detect([a1, a2], DAY)[0]
        assert conflict.auto_resolvable
        assert conflict.suggested_resolutions == ["Move appointment a2 to 2026-03-02 08:00"]

    def test_no_room_to_move(self, detector):
        doc = Practitioner(
            id="doc-1",
            clinic_id=CLINIC,
            availability=[AvailabilityRule(weekday=0, start=time(10), end=time(10, 45))],
        )
        a1 = make_appt("doc-1", "room-1", at(10), appt_id="a1")
        a2 = make_appt("doc-1", "room-2", at(10, 15), appt_id="a2")
        conflicts = detector.detect([a1, a2], DAY, practitioners=[doc])
        assert len(conflicts) == 1
        assert not conflicts[0].auto_resolvable
        assert conflicts[0].suggested_resolutions == []


class TestOutsideAvailability:
    def test_evening_appointment(self, detector, practitioners, rooms):
        late = make_appt("doc-1", "room-1", at(19), appt_id="late")
        conflicts = detector.detect([late], DAY, practitioners, rooms)
        assert len(conflicts) == 1
        c = conflicts[0]
        assert c.kind == ConflictType.OUTSIDE_AVAILABILITY
        assert c.severity == ConflictSeverity.MEDIUM
        assert c.affected_resource_ids == ["doc-1", "room-1"]
        assert c.at_time == at(19)

    def test_not_checked_without_profiles(self, detector):
        late = make_appt("doc-1", "room-1", at(19))
        assert detector.detect([late], DAY) == []


def test_range_days_half_open():
    assert range_days(DAY) == (MONDAY, MONDAY)
    assert range_days(TimeInterval(start=at(22), end=at(2, day=MONDAY.replace(day=3)))) == (
        MONDAY,
        MONDAY.replace(day=3),
    )
