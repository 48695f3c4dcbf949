"""Multi-factor optimality scoring for candidate slots.

Each candidate gets four sub-scores whose caps sum to 100:

- proximity to the preferred date (default 0-40, linear decay per day)
- time-of-day preference (default 0-30)
- utilization of the practitioner's day (default 0-20, bucketed)
- workload balance against the practitioner pool (default 0-10)

Optimization strategies multiply the sub-scores by per-factor weights and
renormalise so the weighted sub-scores still sum to a total in [0, 100].
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, time
from typing import Iterable, Mapping, Optional, Sequence

from clinic_scheduling.config import Settings, get_settings
from clinic_scheduling.scheduling.models import (
    Appointment,
    CandidateSlot,
    OptimizationStrategy,
    SchedulingPreferences,
    ScoreBreakdown,
)

# Weight multipliers for (proximity, time preference, utilization, workload).
STRATEGY_WEIGHTS: dict[OptimizationStrategy, tuple[float, float, float, float]] = {
    OptimizationStrategy.BALANCED: (1.0, 1.0, 1.0, 1.0),
    OptimizationStrategy.MAXIMIZE_UTILIZATION: (1.0, 1.0, 3.0, 1.0),
    OptimizationStrategy.MINIMIZE_GAPS: (1.0, 1.0, 2.0, 2.0),
    OptimizationStrategy.PATIENT_PREFERENCE: (2.0, 2.0, 1.0, 1.0),
    OptimizationStrategy.DOCTOR_WORKLOAD: (1.0, 1.0, 1.0, 3.0),
}

NOON = time(12, 0)

# Same-day appointment count upper bounds and the utilization points (out of 20) they earn.
_UTILIZATION_BUCKETS: tuple[tuple[int, int], ...] = ((2, 20), (4, 15), (6, 10), (8, 5))


@dataclass
class ScoringContext:
    """Same-day load snapshot used by the utilization and workload factors."""

    daily_load: Mapping[tuple[str, date], int] = field(default_factory=dict)
    practitioner_pool: Sequence[str] = ()

    @classmethod
    def from_appointments(
        cls,
        appointments: Iterable[Appointment],
        practitioner_pool: Sequence[str] = (),
    ) -> "ScoringContext":
        """Count live appointments per (practitioner, start date)."""
        load = Counter(
            (a.practitioner_id, a.interval.day) for a in appointments if a.is_live
        )
        return cls(daily_load=dict(load), practitioner_pool=tuple(practitioner_pool))

    def load_for(self, practitioner_id: str, day: date) -> int:
        return self.daily_load.get((practitioner_id, day), 0)

    def pool_mean(self, day: date, fallback: str) -> float:
        """Mean same-day load across the pool (or just *fallback* if the pool is empty)."""
        pool = self.practitioner_pool or (fallback,)
        return sum(self.load_for(p, day) for p in pool) / len(pool)


class SlotScorer:
    """Computes a composite 0-100 optimality score for a candidate slot."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Sub-scores (raw, before strategy weighting)
    # ------------------------------------------------------------------

    def proximity_score(self, slot_day: date, preferred_date: date) -> float:
        days = abs((slot_day - preferred_date).days)
        return max(0.0, self.settings.proximity_max_points - self.settings.proximity_decay_per_day * days)

    def time_preference_score(
        self,
        slot: CandidateSlot,
        preferences: Optional[SchedulingPreferences],
    ) -> tuple[float, str]:
        """Return the raw time-of-day score and the rule that produced it."""
        cap = self.settings.time_preference_max_points
        start = slot.interval.start.time()

        if preferences is None:
            if 9 <= start.hour <= 17:
                return cap * 25 / 30, "core hours 09-17"
            return cap * 15 / 30, "outside core hours"

        if (
            preferences.preferred_start is not None
            and preferences.preferred_end is not None
            and preferences.preferred_start <= start <= preferences.preferred_end
        ):
            return cap, "within preferred time range"
        if preferences.prefer_morning and start < NOON:
            return cap * 20 / 30, "morning preference"
        if preferences.prefer_afternoon and start >= NOON:
            return cap * 20 / 30, "afternoon preference"
        return cap * 10 / 30, "does not match preferences"

    def utilization_score(self, load: int) -> float:
        cap = self.settings.utilization_max_points
        for upper, points in _UTILIZATION_BUCKETS:
            if load <= upper:
                return cap * points / 20
        return 0.0

    def workload_score(self, load: int, pool_mean: float) -> float:
        excess = max(0.0, load - pool_mean)
        return max(
            0.0,
            self.settings.workload_max_points - self.settings.workload_penalty_per_appointment * excess,
        )

    # ------------------------------------------------------------------
    # Composite
    # ------------------------------------------------------------------

    def score(
        self,
        slot: CandidateSlot,
        preferred_date: date,
        preferences: Optional[SchedulingPreferences] = None,
        context: Optional[ScoringContext] = None,
        strategy: OptimizationStrategy = OptimizationStrategy.BALANCED,
    ) -> ScoreBreakdown:
        """Score *slot*; the result depends only on the arguments."""
        context = context or ScoringContext()
        day = slot.interval.day
        days_away = abs((day - preferred_date).days)
        load = context.load_for(slot.practitioner_id, day)
        pool_mean = context.pool_mean(day, fallback=slot.practitioner_id)

        time_points, time_rule = self.time_preference_score(slot, preferences)
        raw = (
            self.proximity_score(day, preferred_date),
            time_points,
            self.utilization_score(load),
            self.workload_score(load, pool_mean),
        )
        weights = STRATEGY_WEIGHTS[strategy]
        caps = self.settings.max_points
        normaliser = sum(w * c for w, c in zip(weights, caps))
        scale = 100.0 / normaliser if normaliser else 0.0
        weighted = [min(100.0, w * s * scale) for w, s in zip(weights, raw)]

        details = (
            f"{days_away} day(s) from preferred date",
            time_rule,
            f"{load} same-day appointment(s)",
            f"load {load} vs pool mean {pool_mean:.1f}",
        )
        labels = ("Proximity", "Time Preference", "Utilization", "Workload")
        factors = []
        for label, points, cap, value, detail in zip(labels, raw, caps, weighted, details):
            line = f"{label}: {points:g}/{cap:g} ({detail})"
            if value != points:
                line += f" weighted {value:.1f}"
            factors.append(line)

        total = min(100.0, max(0.0, sum(weighted)))
        return ScoreBreakdown(
            proximity=weighted[0],
            time_preference=weighted[1],
            utilization=weighted[2],
            workload=weighted[3],
            total=total,
            factors=factors,
        )

    def apply(
        self,
        slot: CandidateSlot,
        preferred_date: date,
        preferences: Optional[SchedulingPreferences] = None,
        context: Optional[ScoringContext] = None,
        strategy: OptimizationStrategy = OptimizationStrategy.BALANCED,
    ) -> CandidateSlot:
        """Return a copy of *slot* carrying its score breakdown and factors."""
        breakdown = self.score(slot, preferred_date, preferences, context, strategy)
        return slot.model_copy(update={"scores": breakdown, "factors": list(breakdown.factors)})
