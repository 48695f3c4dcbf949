"""Overlap queries over booked intervals."""

from bisect import bisect_left
from typing import Iterable

from clinic_scheduling.scheduling.models import TimeInterval


def overlaps(existing: Iterable[TimeInterval], candidate: TimeInterval) -> bool:
    """Return True if *candidate* overlaps any interval in *existing*.

    Half-open semantics: an interval ending exactly when the candidate starts
    is not an overlap.
    """
    return any(e.start < candidate.end and e.end > candidate.start for e in existing)


class IntervalIndex:
    """Sorted index of one resource's booked intervals.

    Intervals are kept ordered by start time with a running maximum of end
    times, so a query only inspects intervals starting before the candidate
    ends.
    """

    def __init__(self, intervals: Iterable[TimeInterval] = ()) -> None:
        self._intervals: list[TimeInterval] = sorted(intervals, key=lambda i: (i.start, i.end))
        self._starts = [i.start for i in self._intervals]
        self._max_end = []
        running = None
        for interval in self._intervals:
            running = interval.end if running is None or interval.end > running else running
            self._max_end.append(running)

    def __len__(self) -> int:
        return len(self._intervals)

    def __iter__(self):
        return iter(self._intervals)

    def overlaps_any(self, candidate: TimeInterval) -> bool:
        """True if any indexed interval overlaps *candidate*."""
        # Only intervals starting strictly before candidate.end can overlap.
        idx = bisect_left(self._starts, candidate.end)
        if idx == 0:
            return False
        return self._max_end[idx - 1] > candidate.start

    def overlapping(self, candidate: TimeInterval) -> list[TimeInterval]:
        """All indexed intervals that overlap *candidate*, in start order."""
        idx = bisect_left(self._starts, candidate.end)
        return [i for i in self._intervals[:idx] if i.end > candidate.start]
