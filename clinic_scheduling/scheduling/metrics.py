"""Resource utilization metrics over a date range."""

from collections import Counter, defaultdict
from datetime import date, datetime
from typing import Iterable, Sequence

from clinic_scheduling.scheduling.models import (
    Appointment,
    AvailabilityRule,
    Practitioner,
    Room,
    TimeInterval,
    UtilizationMetrics,
)
from clinic_scheduling.scheduling.slots import SlotGenerator, iter_days


def _minutes(start: datetime, end: datetime) -> float:
    return max(0.0, (end - start).total_seconds() / 60)


def _percent(booked: float, available: float) -> float:
    if available <= 0:
        return 0.0
    return round(min(100.0, booked / available * 100), 2)


def compute_utilization(
    appointments: Iterable[Appointment],
    practitioners: Sequence[Practitioner],
    rooms: Sequence[Room],
    start_date: date,
    end_date: date,
    generator: SlotGenerator,
) -> UtilizationMetrics:
    """Compute booked vs. available time for every practitioner and room.

    Only live appointments count. Booked minutes are clipped to the range;
    available minutes come from each resource's working windows.
    """
    span = TimeInterval.for_days(start_date, end_date)
    live = [a for a in appointments if a.is_live and a.interval.overlaps(span)]

    def available_minutes(rules: list[AvailabilityRule]) -> float:
        return sum(
            _minutes(w.start, w.end)
            for day in iter_days(start_date, end_date)
            for w in generator.resource_windows(rules, day)
        )

    booked_by_practitioner: dict[str, float] = defaultdict(float)
    booked_by_room: dict[str, float] = defaultdict(float)
    for appt in live:
        clipped = _minutes(max(appt.interval.start, span.start), min(appt.interval.end, span.end))
        booked_by_practitioner[appt.practitioner_id] += clipped
        booked_by_room[appt.room_id] += clipped

    practitioner_utilization = {
        p.id: _percent(booked_by_practitioner[p.id], available_minutes(p.availability))
        for p in practitioners
    }
    room_utilization = {
        r.id: _percent(booked_by_room[r.id], available_minutes(r.availability))
        for r in rooms
    }

    gaps: list[float] = []
    per_day: dict[tuple[str, date], list[Appointment]] = defaultdict(list)
    for appt in live:
        per_day[(appt.practitioner_id, appt.interval.day)].append(appt)
    for day_appts in per_day.values():
        day_appts.sort(key=lambda a: a.interval.start)
        latest_end = day_appts[0].interval.end
        for appt in day_appts[1:]:
            if appt.interval.start > latest_end:
                gaps.append(_minutes(latest_end, appt.interval.start))
            latest_end = max(latest_end, appt.interval.end)

    def mean(values: Iterable[float]) -> float:
        values = list(values)
        return round(sum(values) / len(values), 2) if values else 0.0

    return UtilizationMetrics(
        start_date=start_date,
        end_date=end_date,
        overall_practitioner_utilization=mean(practitioner_utilization.values()),
        practitioner_utilization=practitioner_utilization,
        practitioner_appointment_count=dict(Counter(a.practitioner_id for a in live)),
        overall_room_utilization=mean(room_utilization.values()),
        room_utilization=room_utilization,
        room_appointment_count=dict(Counter(a.room_id for a in live)),
        hourly_distribution=dict(Counter(a.interval.start.hour for a in live)),
        average_gap_minutes=mean(gaps),
        total_idle_minutes=int(sum(gaps)),
    )
