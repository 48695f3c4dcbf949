"""Read-only data access port consumed by the scheduling engine."""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence, runtime_checkable

from clinic_scheduling.scheduling.models import Appointment, Practitioner, Room, TimeInterval


@runtime_checkable
class ResourceDataPort(Protocol):
    """What the engine needs from persistence. The engine never writes through it."""

    def practitioners_by_clinic(
        self,
        clinic_id: str,
        specialization: Optional[str] = None,
    ) -> Sequence[Practitioner]:
        ...

    def active_rooms_by_clinic(self, clinic_id: str) -> Sequence[Room]:
        ...

    def appointments_overlapping(
        self,
        resource_ids: Iterable[str],
        time_range: TimeInterval,
        include_inactive: bool = False,
    ) -> Sequence[Appointment]:
        """Appointments using any of *resource_ids* that overlap *time_range*.

        Only live appointments are returned unless *include_inactive* is set.
        """
        ...


class InMemoryDataPort:
    """ResourceDataPort over plain lists, for tests and snapshot tooling."""

    def __init__(
        self,
        practitioners: Iterable[Practitioner] = (),
        rooms: Iterable[Room] = (),
        appointments: Iterable[Appointment] = (),
    ) -> None:
        self.practitioners: list[Practitioner] = list(practitioners)
        self.rooms: list[Room] = list(rooms)
        self.appointments: list[Appointment] = list(appointments)

    def add_appointment(self, appointment: Appointment) -> Appointment:
        self.appointments.append(appointment)
        return appointment

    def practitioners_by_clinic(
        self,
        clinic_id: str,
        specialization: Optional[str] = None,
    ) -> list[Practitioner]:
        result = [p for p in self.practitioners if p.clinic_id == clinic_id]
        if specialization:
            wanted = specialization.casefold()
            result = [p for p in result if p.specialization.casefold() == wanted]
        return sorted(result, key=lambda p: p.id)

    def active_rooms_by_clinic(self, clinic_id: str) -> list[Room]:
        return sorted(
            (r for r in self.rooms if r.clinic_id == clinic_id and r.is_active),
            key=lambda r: r.id,
        )

    def appointments_overlapping(
        self,
        resource_ids: Iterable[str],
        time_range: TimeInterval,
        include_inactive: bool = False,
    ) -> list[Appointment]:
        wanted = set(resource_ids)
        return [
            a
            for a in self.appointments
            if (a.practitioner_id in wanted or a.room_id in wanted)
            and a.interval.overlaps(time_range)
            and (include_inactive or a.is_live)
        ]
