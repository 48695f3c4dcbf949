"""Pydantic models for the scheduling engine."""

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AppointmentStatus(str, Enum):
    """Appointment lifecycle statuses."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CANCELLED_BY_PATIENT = "cancelled_by_patient"
    CANCELLED_BY_CLINIC = "cancelled_by_clinic"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"
    PENDING_CONFIRMATION = "pending_confirmation"
    EXPIRED = "expired"

    @property
    def is_live(self) -> bool:
        """Whether an appointment in this status still occupies its resources."""
        return self not in INACTIVE_STATUSES


INACTIVE_STATUSES = frozenset(
    {
        AppointmentStatus.CANCELLED,
        AppointmentStatus.CANCELLED_BY_PATIENT,
        AppointmentStatus.CANCELLED_BY_CLINIC,
        AppointmentStatus.NO_SHOW,
    }
)


class SchedulingPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"
    EMERGENCY = "emergency"


class OptimizationStrategy(str, Enum):
    """Selects which scoring weights dominate."""

    MAXIMIZE_UTILIZATION = "maximize_utilization"
    MINIMIZE_GAPS = "minimize_gaps"
    BALANCED = "balanced"
    PATIENT_PREFERENCE = "patient_preference"
    DOCTOR_WORKLOAD = "doctor_workload"


class ConflictType(str, Enum):
    PRACTITIONER_DOUBLE_BOOKING = "practitioner_double_booking"
    ROOM_DOUBLE_BOOKING = "room_double_booking"
    OUTSIDE_AVAILABILITY = "outside_availability"


class ConflictSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ----------------------------------------------------------------------
# Time primitives
# ----------------------------------------------------------------------


class TimeInterval(BaseModel):
    """Half-open ``[start, end)`` interval between two instants."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _check_order(self) -> "TimeInterval":
        if self.start >= self.end:
            raise ValueError(
                f"Interval start {self.start.isoformat()} must be before end {self.end.isoformat()}"
            )
        return self

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def day(self) -> date:
        return self.start.date()

    def overlaps(self, other: "TimeInterval") -> bool:
        """True if the two intervals share any instant (touching ends do not)."""
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeInterval") -> bool:
        return self.start <= other.start and other.end <= self.end

    @classmethod
    def for_days(cls, first: date, last: date) -> "TimeInterval":
        """Interval covering whole calendar days ``first`` through ``last``."""
        return cls(
            start=datetime.combine(first, time.min),
            end=datetime.combine(last + timedelta(days=1), time.min),
        )


class WorkingHours(BaseModel):
    """Daily time-of-day window. An ``end`` of 00:00 means midnight."""

    model_config = ConfigDict(frozen=True)

    start: time = time(8, 0)
    end: time = time(18, 0)

    @model_validator(mode="after")
    def _check_window(self) -> "WorkingHours":
        if self.end != time.min and self.end <= self.start:
            raise ValueError(f"Working hours end {self.end} must be after start {self.start}")
        return self

    def on(self, day: date) -> TimeInterval:
        """Concrete interval for this window on ``day``."""
        start = datetime.combine(day, self.start)
        if self.end == time.min:
            end = datetime.combine(day + timedelta(days=1), time.min)
        else:
            end = datetime.combine(day, self.end)
        return TimeInterval(start=start, end=end)


class AvailabilityRule(WorkingHours):
    """Declared working window for one weekday (0=Mon..6=Sun)."""

    weekday: int = Field(ge=0, le=6)
    is_active: bool = True


# ----------------------------------------------------------------------
# Resources and bookings
# ----------------------------------------------------------------------


class Practitioner(BaseModel):
    id: str
    clinic_id: str
    name: str = ""
    specialization: str = ""
    availability: list[AvailabilityRule] = Field(default_factory=list)


class Room(BaseModel):
    id: str
    clinic_id: str
    name: str = ""
    code: str = ""
    is_active: bool = True
    availability: list[AvailabilityRule] = Field(default_factory=list)


class BookedInterval(BaseModel):
    """Immutable snapshot of one resource's occupied interval."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    interval: TimeInterval
    appointment_id: str


class Appointment(BaseModel):
    """A booked appointment as fetched from the data port."""

    id: str
    practitioner_id: str
    room_id: str
    interval: TimeInterval
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    clinic_id: Optional[str] = None
    patient_id: Optional[str] = None
    service_type: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.status.is_live

    def booked_intervals(self) -> list[BookedInterval]:
        """One booking per resource this appointment occupies."""
        return [
            BookedInterval(resource_id=self.practitioner_id, interval=self.interval, appointment_id=self.id),
            BookedInterval(resource_id=self.room_id, interval=self.interval, appointment_id=self.id),
        ]


# ----------------------------------------------------------------------
# Requests
# ----------------------------------------------------------------------


class SchedulingPreferences(BaseModel):
    """Patient preferences steering the slot search."""

    preferred_start: Optional[time] = None
    preferred_end: Optional[time] = None
    preferred_days: set[int] = Field(default_factory=set, description="Weekdays, 0=Mon")
    excluded_days: set[int] = Field(default_factory=set, description="Weekdays, 0=Mon")
    max_days_from_preferred: Optional[int] = Field(
        default=None,
        description="Days searched after the preferred date; None uses the configured default",
    )
    prefer_morning: bool = False
    prefer_afternoon: bool = False
    preferred_room_id: Optional[str] = None
    priority: SchedulingPriority = SchedulingPriority.NORMAL


class SlotSearchCriteria(BaseModel):
    """Request to find or list slots for one service."""

    clinic_id: str
    preferred_date: date
    duration_minutes: Optional[int] = None
    preferred_practitioner_id: Optional[str] = None
    required_specialization: Optional[str] = None
    room_id: Optional[str] = None
    preferences: Optional[SchedulingPreferences] = None
    strategy: OptimizationStrategy = OptimizationStrategy.BALANCED
    today: Optional[date] = Field(
        default=None,
        description="Reference date; days before it are never offered",
    )
    patient_id: Optional[str] = None


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------


class ScoreBreakdown(BaseModel):
    proximity: float = Field(default=0.0, ge=0, le=100)
    time_preference: float = Field(default=0.0, ge=0, le=100)
    utilization: float = Field(default=0.0, ge=0, le=100)
    workload: float = Field(default=0.0, ge=0, le=100)
    total: float = Field(default=0.0, ge=0, le=100)
    factors: list[str] = Field(default_factory=list)


class CandidateSlot(BaseModel):
    """A candidate, not-yet-booked interval for one practitioner and one room."""

    interval: TimeInterval
    practitioner_id: str
    room_id: str
    available: bool = True
    scores: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    factors: list[str] = Field(default_factory=list)
    conflict_reasons: list[str] = Field(default_factory=list)
    practitioner_name: str = ""
    room_name: str = ""
    specialization: str = ""

    @property
    def score(self) -> float:
        return self.scores.total


class SlotSearchOutcome(BaseModel):
    """Result of an optimal-slot search; ``slot`` is None when nothing fits."""

    slot: Optional[CandidateSlot] = None
    window_start: date
    window_end: date
    candidates_considered: int = 0
    reason: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.slot is not None


class Conflict(BaseModel):
    kind: ConflictType
    severity: ConflictSeverity
    affected_appointment_ids: list[str]
    affected_resource_ids: list[str] = Field(default_factory=list)
    at_time: datetime
    auto_resolvable: bool = False
    description: str = ""
    suggested_resolutions: list[str] = Field(default_factory=list)


class ProposedMove(BaseModel):
    """Relocation proposed by a strategy run; never persisted by the engine."""

    appointment_id: str
    practitioner_id: str
    room_id: str
    original: TimeInterval
    proposed: TimeInterval
    score: float


class OptimizationResult(BaseModel):
    strategy: OptimizationStrategy
    considered: int = 0
    changed: int = 0
    conflicts_before: int = 0
    conflicts_after: int = 0
    conflicts_resolved: int = 0
    moves: list[ProposedMove] = []
    changes: list[str] = []
    warnings: list[str] = []


class UtilizationMetrics(BaseModel):
    start_date: date
    end_date: date
    overall_practitioner_utilization: float = 0.0
    practitioner_utilization: dict[str, float] = {}
    practitioner_appointment_count: dict[str, int] = {}
    overall_room_utilization: float = 0.0
    room_utilization: dict[str, float] = {}
    room_appointment_count: dict[str, int] = {}
    hourly_distribution: dict[int, int] = {}
    average_gap_minutes: float = 0.0
    total_idle_minutes: int = 0
