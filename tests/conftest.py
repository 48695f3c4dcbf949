"""Pytest configuration and fixtures."""

import uuid
from datetime import date, datetime, timedelta

import pytest

from clinic_scheduling.config import Settings
from clinic_scheduling.scheduling.engine import SchedulingEngine
from clinic_scheduling.scheduling.models import (
    Appointment,
    AppointmentStatus,
    Practitioner,
    Room,
    TimeInterval,
)
from clinic_scheduling.scheduling.ports import InMemoryDataPort

# 2026-03-02 is a Monday.
MONDAY = date(2026, 3, 2)
CLINIC = "clinic-1"


def at(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


def interval(start: datetime, minutes: int = 30) -> TimeInterval:
    return TimeInterval(start=start, end=start + timedelta(minutes=minutes))


def make_appt(
    practitioner_id: str,
    room_id: str,
    start: datetime,
    minutes: int = 30,
    status: AppointmentStatus = AppointmentStatus.SCHEDULED,
    appt_id: str | None = None,
) -> Appointment:
    return Appointment(
        id=appt_id or str(uuid.uuid4()),
        practitioner_id=practitioner_id,
        room_id=room_id,
        interval=interval(start, minutes),
        status=status,
        clinic_id=CLINIC,
        patient_id="pat-1",
    )


@pytest.fixture
def settings():
    """Default settings, isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def practitioners():
    return [
        Practitioner(id="doc-1", clinic_id=CLINIC, name="Ada Rossi", specialization="Cardiology"),
        Practitioner(id="doc-2", clinic_id=CLINIC, name="Luca Bianchi", specialization="Dermatology"),
    ]


@pytest.fixture
def rooms():
    return [
        Room(id="room-1", clinic_id=CLINIC, name="Room 1", code="R1"),
        Room(id="room-2", clinic_id=CLINIC, name="Room 2", code="R2"),
        Room(id="room-3", clinic_id=CLINIC, name="Storage", code="R3", is_active=False),
    ]


@pytest.fixture
def port(practitioners, rooms):
    return InMemoryDataPort(practitioners=practitioners, rooms=rooms)


@pytest.fixture
def engine(port, settings):
    return SchedulingEngine(port, settings)
