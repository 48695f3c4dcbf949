"""Slot search, scoring and conflict detection for clinic appointments."""

from clinic_scheduling.scheduling.conflicts import ConflictDetector
from clinic_scheduling.scheduling.engine import SchedulingEngine
from clinic_scheduling.scheduling.errors import (
    InvalidRequestError,
    SchedulingError,
    SlotUnavailableError,
)
from clinic_scheduling.scheduling.intervals import IntervalIndex, overlaps
from clinic_scheduling.scheduling.models import (
    Appointment,
    AppointmentStatus,
    AvailabilityRule,
    BookedInterval,
    CandidateSlot,
    Conflict,
    ConflictSeverity,
    ConflictType,
    OptimizationResult,
    OptimizationStrategy,
    Practitioner,
    ProposedMove,
    Room,
    SchedulingPreferences,
    SchedulingPriority,
    ScoreBreakdown,
    SlotSearchCriteria,
    SlotSearchOutcome,
    TimeInterval,
    UtilizationMetrics,
    WorkingHours,
)
from clinic_scheduling.scheduling.ports import InMemoryDataPort, ResourceDataPort
from clinic_scheduling.scheduling.scoring import ScoringContext, SlotScorer
from clinic_scheduling.scheduling.slots import SlotGenerator

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AvailabilityRule",
    "BookedInterval",
    "CandidateSlot",
    "Conflict",
    "ConflictDetector",
    "ConflictSeverity",
    "ConflictType",
    "InMemoryDataPort",
    "IntervalIndex",
    "InvalidRequestError",
    "OptimizationResult",
    "OptimizationStrategy",
    "Practitioner",
    "ProposedMove",
    "ResourceDataPort",
    "Room",
    "SchedulingEngine",
    "SchedulingError",
    "SchedulingPreferences",
    "SchedulingPriority",
    "ScoreBreakdown",
    "ScoringContext",
    "SlotGenerator",
    "SlotScorer",
    "SlotSearchCriteria",
    "SlotSearchOutcome",
    "SlotUnavailableError",
    "TimeInterval",
    "UtilizationMetrics",
    "WorkingHours",
    "overlaps",
]
