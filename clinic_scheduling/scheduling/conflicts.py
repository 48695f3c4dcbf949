"""Double-booking and availability conflict detection."""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Callable, Iterable, Optional, Sequence

from clinic_scheduling.config import Settings, get_settings
from clinic_scheduling.scheduling.models import (
    Appointment,
    BookedInterval,
    CandidateSlot,
    Conflict,
    ConflictSeverity,
    ConflictType,
    Practitioner,
    Room,
    TimeInterval,
)
from clinic_scheduling.scheduling.slots import SlotGenerator

logger = logging.getLogger(__name__)


def range_days(time_range: TimeInterval) -> tuple[date, date]:
    """First and last calendar day touched by a half-open range."""
    return time_range.start.date(), (time_range.end - timedelta(microseconds=1)).date()


class ConflictDetector:
    """Finds practitioner/room double-bookings with a per-resource sweep.

    Appointments are grouped by resource and sorted by start time. Each
    appointment that overlaps its predecessor is reported with that
    predecessor. One that clears its predecessor but still starts before the
    latest end seen so far is nested inside an earlier long appointment, and
    is reported with that one. The sweep is O(n log n).
    """

    def __init__(
        self,
        generator: Optional[SlotGenerator] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.generator = generator or SlotGenerator(self.settings)

    def detect(
        self,
        appointments: Iterable[Appointment],
        time_range: TimeInterval,
        practitioners: Sequence[Practitioner] = (),
        rooms: Sequence[Room] = (),
    ) -> list[Conflict]:
        """Detect conflicts among live appointments overlapping *time_range*.

        When *practitioners* or *rooms* are given, appointments falling
        outside those resources' declared availability are reported too, and
        their profiles are used when searching for alternative slots.
        """
        live = [a for a in appointments if a.is_live and a.interval.overlaps(time_range)]
        practitioner_map = {p.id: p for p in practitioners}
        room_map = {r.id: r for r in rooms}

        conflicts = self._sweep(
            live,
            key=lambda a: a.practitioner_id,
            kind=ConflictType.PRACTITIONER_DOUBLE_BOOKING,
            label="Practitioner",
        )
        conflicts += self._sweep(
            live,
            key=lambda a: a.room_id,
            kind=ConflictType.ROOM_DOUBLE_BOOKING,
            label="Room",
        )
        if practitioner_map or room_map:
            conflicts += self._availability_conflicts(live, practitioner_map, room_map)

        by_id = {a.id: a for a in live}
        for conflict in conflicts:
            moved = by_id[conflict.affected_appointment_ids[-1]]
            alternative = self.find_alternative(moved, live, time_range, practitioner_map, room_map)
            if alternative is not None:
                conflict.auto_resolvable = True
                conflict.suggested_resolutions.append(
                    f"Move appointment {moved.id} to {alternative.interval.start.strftime('%Y-%m-%d %H:%M')}"
                )

        logger.debug(f"Detected {len(conflicts)} conflicts among {len(live)} live appointments")
        return conflicts

    def find_alternative(
        self,
        appointment: Appointment,
        live: Sequence[Appointment],
        time_range: TimeInterval,
        practitioners: dict[str, Practitioner],
        rooms: dict[str, Room],
    ) -> Optional[CandidateSlot]:
        """First same-duration free slot for the appointment's resources in the range."""
        practitioner = practitioners.get(appointment.practitioner_id) or Practitioner(
            id=appointment.practitioner_id, clinic_id=appointment.clinic_id or ""
        )
        room = rooms.get(appointment.room_id) or Room(
            id=appointment.room_id, clinic_id=appointment.clinic_id or ""
        )
        booked: list[BookedInterval] = [
            b for a in live if a.id != appointment.id for b in a.booked_intervals()
        ]
        first, last = range_days(time_range)
        slots = self.generator.generate(
            practitioner,
            room,
            first,
            last,
            appointment.interval.duration,
            booked=booked,
        )
        return next(slots, None)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _sweep(
        live: Sequence[Appointment],
        key: Callable[[Appointment], str],
        kind: ConflictType,
        label: str,
    ) -> list[Conflict]:
        groups: dict[str, list[Appointment]] = defaultdict(list)
        for appt in live:
            groups[key(appt)].append(appt)

        conflicts: list[Conflict] = []
        for resource_id in sorted(groups):
            ordered = sorted(groups[resource_id], key=lambda a: (a.interval.start, a.interval.end, a.id))
            latest = ordered[0]
            for prev, nxt in zip(ordered, ordered[1:]):
                if prev.interval.end > nxt.interval.start:
                    other = prev
                elif latest.interval.end > nxt.interval.start:
                    other = latest
                else:
                    other = None
                if other is not None:
                    conflicts.append(
                        Conflict(
                            kind=kind,
                            severity=ConflictSeverity.HIGH,
                            affected_appointment_ids=[other.id, nxt.id],
                            affected_resource_ids=[resource_id],
                            at_time=nxt.interval.start,
                            description=f"{label} {resource_id} double booking detected",
                        )
                    )
                if nxt.interval.end > latest.interval.end:
                    latest = nxt
        return conflicts

    def _availability_conflicts(
        self,
        live: Sequence[Appointment],
        practitioners: dict[str, Practitioner],
        rooms: dict[str, Room],
    ) -> list[Conflict]:
        conflicts: list[Conflict] = []
        for appt in sorted(live, key=lambda a: (a.interval.start, a.id)):
            outside: list[str] = []
            practitioner = practitioners.get(appt.practitioner_id)
            if practitioner and not self.generator.within_working_hours(practitioner.availability, appt.interval):
                outside.append(practitioner.id)
            room = rooms.get(appt.room_id)
            if room and not self.generator.within_working_hours(room.availability, appt.interval):
                outside.append(room.id)
            if outside:
                conflicts.append(
                    Conflict(
                        kind=ConflictType.OUTSIDE_AVAILABILITY,
                        severity=ConflictSeverity.MEDIUM,
                        affected_appointment_ids=[appt.id],
                        affected_resource_ids=outside,
                        at_time=appt.interval.start,
                        description=f"Appointment {appt.id} falls outside declared availability of {', '.join(outside)}",
                    )
                )
        return conflicts
