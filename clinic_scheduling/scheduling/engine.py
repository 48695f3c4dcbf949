"""Scheduling engine facade.

Every operation reads a snapshot through the ResourceDataPort and then
computes in memory; the engine keeps no mutable state between calls and is
safe to share between threads.

Availability answers are snapshot-based and do not reserve anything. Two
callers can both see the same slot as free, so the persistence layer must
enforce "no overlapping live appointments per practitioner or room" at
commit time and signal a lost race with SlotUnavailableError.
``book_optimal_slot`` handles that signal by searching once more.
"""

import logging
from datetime import date, timedelta
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from clinic_scheduling.config import Settings, get_settings
from clinic_scheduling.scheduling.conflicts import ConflictDetector
from clinic_scheduling.scheduling.errors import InvalidRequestError, SlotUnavailableError
from clinic_scheduling.scheduling.metrics import compute_utilization
from clinic_scheduling.scheduling.models import (
    Appointment,
    BookedInterval,
    CandidateSlot,
    Conflict,
    OptimizationResult,
    OptimizationStrategy,
    Practitioner,
    ProposedMove,
    Room,
    SchedulingPreferences,
    SlotSearchCriteria,
    SlotSearchOutcome,
    TimeInterval,
    UtilizationMetrics,
)
from clinic_scheduling.scheduling.ports import ResourceDataPort
from clinic_scheduling.scheduling.scoring import ScoringContext, SlotScorer
from clinic_scheduling.scheduling.slots import SlotGenerator

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_DURATION_MINUTES = 24 * 60


def _rank_key(slot: CandidateSlot):
    """Highest score first, then earliest start; ids keep the order total."""
    return (-slot.scores.total, slot.interval.start, slot.practitioner_id, slot.room_id)


def _booked(appointments: Iterable[Appointment]) -> list[BookedInterval]:
    return [b for a in appointments if a.is_live for b in a.booked_intervals()]


class SchedulingEngine:
    """Finds, ranks and checks appointment slots and detects conflicts."""

    def __init__(self, port: ResourceDataPort, settings: Optional[Settings] = None) -> None:
        self.port = port
        self.settings = settings or get_settings()
        self.generator = SlotGenerator(self.settings)
        self.scorer = SlotScorer(self.settings)
        self.detector = ConflictDetector(self.generator, self.settings)

    # ------------------------------------------------------------------
    # Slot search
    # ------------------------------------------------------------------

    def find_optimal_slot(self, criteria: SlotSearchCriteria) -> Optional[CandidateSlot]:
        """Return the best available slot, or None when nothing fits."""
        return self.search_optimal_slot(criteria).slot

    def search_optimal_slot(self, criteria: SlotSearchCriteria) -> SlotSearchOutcome:
        """Like :meth:`find_optimal_slot` but reports the searched window and why nothing was found."""
        duration = self._duration(criteria.duration_minutes)
        window_start, window_end = self._search_window(criteria)

        candidates, reason = self._scored_candidates(criteria, duration, window_start, window_end)
        best = min(candidates, key=_rank_key) if candidates else None
        if best is None:
            reason = reason or "No available slot in search window"
            logger.info(
                f"No slot for clinic {criteria.clinic_id} between {window_start} and {window_end}: {reason}"
            )
        else:
            reason = None
            logger.info(
                f"Found optimal slot {best.interval.start} with {best.practitioner_id}/{best.room_id} "
                f"score {best.scores.total:.1f}"
            )
        return SlotSearchOutcome(
            slot=best,
            window_start=window_start,
            window_end=window_end,
            candidates_considered=len(candidates),
            reason=reason,
        )

    def list_available_slots(self, criteria: SlotSearchCriteria) -> list[CandidateSlot]:
        """All available slots in the search window, best score first."""
        duration = self._duration(criteria.duration_minutes)
        window_start, window_end = self._search_window(criteria)
        candidates, _ = self._scored_candidates(criteria, duration, window_start, window_end)
        return sorted(candidates, key=_rank_key)

    def is_slot_available(
        self,
        practitioner_id: str,
        room_id: str,
        interval: TimeInterval,
        exclude_appointment_id: Optional[str] = None,
    ) -> bool:
        """True if neither resource has a live appointment overlapping *interval*.

        *exclude_appointment_id* lets a reschedule ignore the appointment
        being moved.
        """
        existing = self.port.appointments_overlapping([practitioner_id, room_id], interval)
        return not any(
            a.is_live and a.id != exclude_appointment_id and a.interval.overlaps(interval)
            for a in existing
        )

    def next_available_slots(
        self,
        clinic_id: str,
        practitioner_id: str,
        today: date,
        count: int = 5,
        duration_minutes: Optional[int] = None,
        horizon_days: int = 30,
    ) -> list[CandidateSlot]:
        """Earliest free start times for one practitioner in any active room."""
        duration = self._duration(duration_minutes)
        if count <= 0 or horizon_days < 0:
            raise InvalidRequestError("count must be positive and horizon_days non-negative")

        practitioner = self._practitioner(clinic_id, practitioner_id)
        rooms = list(self.port.active_rooms_by_clinic(clinic_id))
        if practitioner is None or not rooms:
            return []

        last = today + timedelta(days=horizon_days)
        appointments = self.port.appointments_overlapping(
            [practitioner.id] + [r.id for r in rooms], TimeInterval.for_days(today, last)
        )
        booked = _booked(appointments)
        # Each room's sequence is in start order, so its first `count` slots
        # contain every start that can make the overall top `count`.
        pooled: list[CandidateSlot] = []
        for room in rooms:
            for i, slot in enumerate(self.generator.generate(practitioner, room, today, last, duration, booked)):
                if i >= count:
                    break
                pooled.append(slot)

        context = ScoringContext.from_appointments(appointments, [practitioner.id])
        result: list[CandidateSlot] = []
        seen = set()
        for slot in sorted(pooled, key=lambda s: (s.interval.start, s.room_id)):
            if slot.interval.start in seen:
                continue
            seen.add(slot.interval.start)
            result.append(self.scorer.apply(slot, today, None, context))
            if len(result) == count:
                break
        return result

    def suggest_reschedule(
        self,
        appointment: Appointment,
        clinic_id: str,
        limit: int = 5,
        window_days: Optional[int] = None,
        today: Optional[date] = None,
    ) -> list[CandidateSlot]:
        """Free slots for the same practitioner and duration, closest to the original start."""
        window_days = self.settings.default_search_days if window_days is None else window_days
        if window_days < 0 or limit <= 0:
            raise InvalidRequestError("window_days must be non-negative and limit positive")

        practitioner = self._practitioner(clinic_id, appointment.practitioner_id)
        rooms = list(self.port.active_rooms_by_clinic(clinic_id))
        if practitioner is None or not rooms:
            return []

        original = appointment.interval
        first = original.day - timedelta(days=window_days)
        if today is not None and first < today:
            first = today
        last = original.day + timedelta(days=window_days)
        if first > last:
            return []

        appointments = self.port.appointments_overlapping(
            [practitioner.id] + [r.id for r in rooms], TimeInterval.for_days(first, last)
        )
        others = [a for a in appointments if a.id != appointment.id]
        booked = _booked(others)
        context = ScoringContext.from_appointments(others, [practitioner.id])

        candidates = [
            slot
            for room in rooms
            for slot in self.generator.generate(
                practitioner, room, first, last, original.duration, booked
            )
        ]
        candidates.sort(
            key=lambda s: (abs(s.interval.start - original.start), s.interval.start, s.room_id)
        )

        result: list[CandidateSlot] = []
        seen = set()
        for slot in candidates:
            if slot.interval.start == original.start or slot.interval.start in seen:
                continue
            seen.add(slot.interval.start)
            result.append(self.scorer.apply(slot, original.day, None, context))
            if len(result) == limit:
                break
        return result

    def book_optimal_slot(
        self,
        criteria: SlotSearchCriteria,
        commit: Callable[[CandidateSlot], T],
    ) -> Optional[T]:
        """Find the optimal slot and hand it to *commit*.

        *commit* is the caller's persistence step. If it raises
        SlotUnavailableError the search runs once more against fresh data;
        a second failure propagates.
        """
        for attempt in (1, 2):
            slot = self.find_optimal_slot(criteria)
            if slot is None:
                return None
            try:
                return commit(slot)
            except SlotUnavailableError:
                if attempt == 2:
                    raise
                logger.warning(
                    f"Slot {slot.interval.start} with {slot.practitioner_id}/{slot.room_id} "
                    f"was taken at commit; searching again"
                )
        return None

    # ------------------------------------------------------------------
    # Conflicts and optimization
    # ------------------------------------------------------------------

    def detect_conflicts(self, clinic_id: str, time_range: TimeInterval) -> list[Conflict]:
        """Fetch the clinic's appointments in *time_range* and detect conflicts."""
        practitioners = list(self.port.practitioners_by_clinic(clinic_id))
        rooms = list(self.port.active_rooms_by_clinic(clinic_id))
        resource_ids = [p.id for p in practitioners] + [r.id for r in rooms]
        if not resource_ids:
            return []
        appointments = self.port.appointments_overlapping(resource_ids, time_range)
        conflicts = self.detector.detect(appointments, time_range, practitioners, rooms)
        logger.info(f"Detected {len(conflicts)} conflicts for clinic {clinic_id}")
        return conflicts

    def apply_optimization_strategy(
        self,
        strategy: OptimizationStrategy,
        appointments: Sequence[Appointment],
        practitioners: Sequence[Practitioner] = (),
        rooms: Sequence[Room] = (),
    ) -> OptimizationResult:
        """Propose strategy-scored relocations for conflicting appointments.

        For each conflict the later appointment is moved, on a working copy,
        to the best free slot on the same day for the same practitioner and
        room, scored with the strategy's weights. Conflicts are re-detected
        on the working copy to report how many the proposal resolves.
        Nothing is written.
        """
        live = [a for a in appointments if a.is_live]
        if not live:
            return OptimizationResult(strategy=strategy, changes=["No appointments to optimize"])

        span = TimeInterval.for_days(
            min(a.interval.day for a in live),
            max(a.interval.end for a in live).date(),
        )
        before = self.detector.detect(live, span, practitioners, rooms)

        practitioner_map = {p.id: p for p in practitioners}
        room_map = {r.id: r for r in rooms}
        pool = [p.id for p in practitioners] or sorted({a.practitioner_id for a in live})
        working = {a.id: a for a in live}

        moves: list[ProposedMove] = []
        changes: list[str] = []
        warnings: list[str] = []
        handled: set[str] = set()

        for conflict in before:
            moved_id = conflict.affected_appointment_ids[-1]
            if moved_id in handled:
                continue
            handled.add(moved_id)

            appt = working[moved_id]
            # An earlier move may already have cleared this conflict.
            others = [a for a in working.values() if a.id != moved_id]
            still_conflicting = self.detector.detect(
                others + [appt], span, practitioners, rooms
            )
            if not any(moved_id in c.affected_appointment_ids for c in still_conflicting):
                continue

            slot = self._best_relocation(appt, others, strategy, pool, practitioner_map, room_map)
            if slot is None:
                warnings.append(
                    f"No free slot on {appt.interval.day} for appointment {moved_id} ({conflict.kind.value})"
                )
                continue

            working[moved_id] = appt.model_copy(update={"interval": slot.interval})
            moves.append(
                ProposedMove(
                    appointment_id=moved_id,
                    practitioner_id=appt.practitioner_id,
                    room_id=appt.room_id,
                    original=appt.interval,
                    proposed=slot.interval,
                    score=slot.scores.total,
                )
            )
            changes.append(
                f"Move appointment {moved_id} from {appt.interval.start:%Y-%m-%d %H:%M} "
                f"to {slot.interval.start:%H:%M}"
            )

        after = self.detector.detect(list(working.values()), span, practitioners, rooms)
        result = OptimizationResult(
            strategy=strategy,
            considered=len(live),
            changed=len(moves),
            conflicts_before=len(before),
            conflicts_after=len(after),
            conflicts_resolved=len(before) - len(after),
            moves=moves,
            changes=changes or [f"Applied {strategy.value} strategy; no changes needed"],
            warnings=warnings,
        )
        logger.info(
            f"Strategy {strategy.value}: {result.changed}/{result.considered} appointments moved, "
            f"{result.conflicts_resolved} conflicts resolved"
        )
        return result

    def utilization_metrics(self, clinic_id: str, start_date: date, end_date: date) -> UtilizationMetrics:
        """Booked vs. available time per practitioner and room."""
        if start_date > end_date:
            raise InvalidRequestError(f"start_date {start_date} is after end_date {end_date}")
        practitioners = list(self.port.practitioners_by_clinic(clinic_id))
        rooms = list(self.port.active_rooms_by_clinic(clinic_id))
        resource_ids = [p.id for p in practitioners] + [r.id for r in rooms]
        appointments = (
            self.port.appointments_overlapping(resource_ids, TimeInterval.for_days(start_date, end_date))
            if resource_ids
            else []
        )
        return compute_utilization(appointments, practitioners, rooms, start_date, end_date, self.generator)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _duration(self, minutes: Optional[int]) -> timedelta:
        minutes = self.settings.default_duration_minutes if minutes is None else minutes
        if minutes <= 0:
            raise InvalidRequestError(f"Duration must be positive, got {minutes} minutes")
        if minutes > _MAX_DURATION_MINUTES:
            raise InvalidRequestError(f"Duration cannot exceed 24 hours, got {minutes} minutes")
        return timedelta(minutes=minutes)

    def _search_window(self, criteria: SlotSearchCriteria) -> tuple[date, date]:
        prefs = criteria.preferences
        max_days = self.settings.default_search_days
        if prefs is not None:
            self._validate_preferences(prefs)
            if prefs.max_days_from_preferred is not None:
                max_days = prefs.max_days_from_preferred

        start = criteria.preferred_date
        end = start + timedelta(days=max_days)
        if criteria.today is not None and start < criteria.today:
            start = criteria.today
        return start, end

    @staticmethod
    def _validate_preferences(prefs: SchedulingPreferences) -> None:
        if prefs.max_days_from_preferred is not None and prefs.max_days_from_preferred < 0:
            raise InvalidRequestError(
                f"max_days_from_preferred must be >= 0, got {prefs.max_days_from_preferred}"
            )
        bad_days = sorted(d for d in prefs.preferred_days | prefs.excluded_days if not 0 <= d <= 6)
        if bad_days:
            raise InvalidRequestError(f"Weekdays must be in 0..6, got {bad_days}")
        if (
            prefs.preferred_start is not None
            and prefs.preferred_end is not None
            and prefs.preferred_start > prefs.preferred_end
        ):
            raise InvalidRequestError(
                f"preferred_start {prefs.preferred_start} is after preferred_end {prefs.preferred_end}"
            )

    def _practitioner(self, clinic_id: str, practitioner_id: str) -> Optional[Practitioner]:
        return next(
            (p for p in self.port.practitioners_by_clinic(clinic_id) if p.id == practitioner_id),
            None,
        )

    def _eligible_resources(
        self, criteria: SlotSearchCriteria
    ) -> tuple[list[Practitioner], list[Room], list[Practitioner]]:
        """Practitioners to search, rooms to search, and the pool used for workload balance."""
        if criteria.preferred_practitioner_id:
            pool = list(self.port.practitioners_by_clinic(criteria.clinic_id))
            practitioners = [p for p in pool if p.id == criteria.preferred_practitioner_id]
        else:
            pool = list(
                self.port.practitioners_by_clinic(criteria.clinic_id, criteria.required_specialization)
            )
            practitioners = pool

        rooms = list(self.port.active_rooms_by_clinic(criteria.clinic_id))
        room_id = criteria.room_id or (criteria.preferences.preferred_room_id if criteria.preferences else None)
        if room_id:
            rooms = [r for r in rooms if r.id == room_id]
        return practitioners, rooms, pool

    def _scored_candidates(
        self,
        criteria: SlotSearchCriteria,
        duration: timedelta,
        window_start: date,
        window_end: date,
    ) -> tuple[list[CandidateSlot], Optional[str]]:
        practitioners, rooms, pool = self._eligible_resources(criteria)
        if not practitioners:
            logger.warning(f"No eligible practitioner for clinic {criteria.clinic_id}")
            return [], "No eligible practitioner"
        if not rooms:
            logger.warning(f"No eligible room for clinic {criteria.clinic_id}")
            return [], "No eligible room"
        if window_start > window_end:
            return [], "Search window lies entirely before today"

        resource_ids = sorted({p.id for p in pool} | {p.id for p in practitioners} | {r.id for r in rooms})
        appointments = self.port.appointments_overlapping(
            resource_ids, TimeInterval.for_days(window_start, window_end)
        )
        booked = _booked(appointments)
        context = ScoringContext.from_appointments(appointments, [p.id for p in pool] or [p.id for p in practitioners])
        prefs = criteria.preferences
        excluded = prefs.excluded_days if prefs else ()

        scored: list[CandidateSlot] = []
        for practitioner in practitioners:
            for room in rooms:
                before = len(scored)
                for slot in self.generator.generate(
                    practitioner, room, window_start, window_end, duration, booked, excluded
                ):
                    scored.append(
                        self.scorer.apply(slot, criteria.preferred_date, prefs, context, criteria.strategy)
                    )
                logger.debug(f"{practitioner.id}/{room.id}: {len(scored) - before} candidate slots")
        return scored, None

    def _best_relocation(
        self,
        appt: Appointment,
        others: list[Appointment],
        strategy: OptimizationStrategy,
        pool: list[str],
        practitioners: dict[str, Practitioner],
        rooms: dict[str, Room],
    ) -> Optional[CandidateSlot]:
        practitioner = practitioners.get(appt.practitioner_id) or Practitioner(
            id=appt.practitioner_id, clinic_id=appt.clinic_id or ""
        )
        room = rooms.get(appt.room_id) or Room(id=appt.room_id, clinic_id=appt.clinic_id or "")
        day = appt.interval.day
        context = ScoringContext.from_appointments(others, pool)
        candidates = [
            self.scorer.apply(slot, day, None, context, strategy)
            for slot in self.generator.generate(
                practitioner, room, day, day, appt.interval.duration, _booked(others)
            )
        ]
        if not candidates:
            return None
        return min(
            candidates,
            key=lambda s: (
                -s.scores.total,
                abs(s.interval.start - appt.interval.start),
                s.interval.start,
            ),
        )
