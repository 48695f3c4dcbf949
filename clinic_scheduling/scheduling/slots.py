"""Candidate slot generation over a practitioner/room pair."""

from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, Optional

from clinic_scheduling.config import Settings, get_settings
from clinic_scheduling.scheduling.errors import InvalidRequestError
from clinic_scheduling.scheduling.intervals import IntervalIndex
from clinic_scheduling.scheduling.models import (
    AvailabilityRule,
    BookedInterval,
    CandidateSlot,
    Practitioner,
    Room,
    TimeInterval,
    WorkingHours,
)


def iter_days(first: date, last: date) -> Iterator[date]:
    """Yield each calendar day from *first* to *last* inclusive."""
    current = first
    while current <= last:
        yield current
        current += timedelta(days=1)


class SlotGenerator:
    """Enumerates fixed-granularity slots that fit working hours and bookings."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.default_hours = WorkingHours(
            start=self.settings.working_day_start,
            end=self.settings.working_day_end,
        )
        self.step = timedelta(minutes=self.settings.slot_granularity_minutes)

    # ------------------------------------------------------------------
    # Working windows
    # ------------------------------------------------------------------

    def resource_windows(self, rules: list[AvailabilityRule], day: date) -> list[TimeInterval]:
        """Working windows declared by one resource for *day*.

        A resource without rules works the default hours every day; one with
        rules is off on weekdays that have no active rule. Overlapping or
        touching rules on the same weekday are merged into one window.
        """
        if not rules:
            return [self.default_hours.on(day)]
        windows = sorted(
            (r.on(day) for r in rules if r.is_active and r.weekday == day.weekday()),
            key=lambda w: w.start,
        )
        merged: list[TimeInterval] = []
        for window in windows:
            if merged and window.start <= merged[-1].end:
                if window.end > merged[-1].end:
                    merged[-1] = TimeInterval(start=merged[-1].start, end=window.end)
            else:
                merged.append(window)
        return merged

    def day_windows(self, practitioner: Practitioner, room: Room, day: date) -> list[TimeInterval]:
        """Windows on *day* during which both resources are working."""
        windows: list[TimeInterval] = []
        for p in self.resource_windows(practitioner.availability, day):
            for r in self.resource_windows(room.availability, day):
                start = max(p.start, r.start)
                end = min(p.end, r.end)
                if start < end:
                    windows.append(TimeInterval(start=start, end=end))
        return sorted(windows, key=lambda w: w.start)

    def within_working_hours(
        self,
        rules: list[AvailabilityRule],
        interval: TimeInterval,
    ) -> bool:
        """True if *interval* lies fully inside one of the resource's windows."""
        return any(w.contains(interval) for w in self.resource_windows(rules, interval.day))

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(
        self,
        practitioner: Practitioner,
        room: Room,
        window_start: date,
        window_end: date,
        duration: timedelta,
        booked: Iterable[BookedInterval] = (),
        excluded_days: Iterable[int] = (),
        include_unavailable: bool = False,
    ) -> Iterator[CandidateSlot]:
        """Yield candidate slots for the pair across ``[window_start, window_end]``.

        *booked* may hold bookings for any resource; only those for this
        practitioner or this room are considered. A room is busy if any
        practitioner uses it. Slots that overlap a booking are skipped unless
        *include_unavailable* is set, in which case they are yielded with
        ``available=False`` and a reason for each busy resource.

        The duration is checked when called, before any slot is produced.
        """
        if duration <= timedelta(0):
            raise InvalidRequestError(f"Duration must be positive, got {duration}")
        return self._iter_slots(
            practitioner,
            room,
            window_start,
            window_end,
            duration,
            list(booked),
            set(excluded_days),
            include_unavailable,
        )

    def _iter_slots(
        self,
        practitioner: Practitioner,
        room: Room,
        window_start: date,
        window_end: date,
        duration: timedelta,
        booked: list[BookedInterval],
        skip: set[int],
        include_unavailable: bool,
    ) -> Iterator[CandidateSlot]:
        if window_start > window_end:
            return

        practitioner_busy = IntervalIndex(b.interval for b in booked if b.resource_id == practitioner.id)
        room_busy = IntervalIndex(b.interval for b in booked if b.resource_id == room.id)

        for day in iter_days(window_start, window_end):
            if day.weekday() in skip:
                continue
            for window in self.day_windows(practitioner, room, day):
                current = window.start
                while current + duration <= window.end:
                    interval = TimeInterval(start=current, end=current + duration)
                    reasons = self._busy_reasons(interval, practitioner, room, practitioner_busy, room_busy)
                    if not reasons or include_unavailable:
                        yield CandidateSlot(
                            interval=interval,
                            practitioner_id=practitioner.id,
                            room_id=room.id,
                            available=not reasons,
                            conflict_reasons=reasons,
                            practitioner_name=practitioner.name,
                            room_name=room.name,
                            specialization=practitioner.specialization,
                        )
                    current += self.step

    @staticmethod
    def _busy_reasons(
        interval: TimeInterval,
        practitioner: Practitioner,
        room: Room,
        practitioner_busy: IntervalIndex,
        room_busy: IntervalIndex,
    ) -> list[str]:
        reasons: list[str] = []
        if practitioner_busy.overlaps_any(interval):
            reasons.append(f"Practitioner {practitioner.id} is booked at {_fmt(interval.start)}")
        if room_busy.overlaps_any(interval):
            reasons.append(f"Room {room.id} is booked at {_fmt(interval.start)}")
        return reasons


def _fmt(instant: datetime) -> str:
    return instant.strftime("%Y-%m-%d %H:%M")
