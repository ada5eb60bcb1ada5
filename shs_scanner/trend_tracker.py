"""
Trend Tracker
-------------
Global, incremental counters of monotonic pivot runs.

Four runs are tracked: ascending lows, ascending highs, descending lows and
descending highs. A pivot is compared with the previous pivot of the same
parity (position - 2); even positions are lows, odd positions are highs.
Within a parity only one of the ascending/descending runs is non-zero at a
time, and a reversal zeroes the opposite run. That reset is the signal the
scanner uses to refresh the following-trend context of open candidates.

The tracker is order-dependent and must see pivot positions in increasing
order. `local_trend` is the per-candidate alternative used by the parallel
scan mode; it walks the pivots around one candidate instead of reading
global state and may therefore disagree with the sequential result.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Iterable, Optional, Tuple

from .series_normalizer import PivotSeries
from .shape_matcher import PATTERN_SIZE, PatternKind

logger = logging.getLogger(__name__)

FOLLOWING_TREND_THRESHOLD = 3


@dataclass
class TrendRun:
    """A monotonic run of same-parity pivots"""
    count: int = 0
    first_index: Optional[int] = None
    first_time: Optional[float] = None
    first_price: Optional[float] = None

    def extend(self, index: int, time: float, price: float) -> None:
        if self.count == 0:
            self.first_index = index
            self.first_time = time
            self.first_price = price
        self.count += 1

    def reset(self) -> None:
        self.count = 0
        self.first_index = None
        self.first_time = None
        self.first_price = None


@dataclass
class TrendSnapshot:
    """Trend context copied onto a candidate"""
    start_price: Optional[float] = None
    start_time: Optional[float] = None
    run_length: int = 0
    complete: bool = False

    @classmethod
    def from_run(cls, run: TrendRun, complete: bool = False) -> 'TrendSnapshot':
        return cls(
            start_price=run.first_price,
            start_time=run.first_time,
            run_length=run.count,
            complete=complete,
        )

    def to_dict(self) -> dict:
        return asdict(self)


class TrendTracker:
    """
    Incremental ascending/descending run counters over a pivot stream.

    Candidates passed to the attach methods need `kind`, `confirmed`,
    `finalized`, `prior_trend` and `following_trend` attributes.
    """

    def __init__(self, pivots: PivotSeries,
                 following_threshold: int = FOLLOWING_TREND_THRESHOLD):
        self.pivots = pivots
        self.following_threshold = following_threshold
        self.asc_low = TrendRun()
        self.asc_high = TrendRun()
        self.desc_low = TrendRun()
        self.desc_high = TrendRun()
        self.resets = 0

    def _runs_for(self, position: int) -> Tuple[TrendRun, TrendRun]:
        if PivotSeries.is_high(position):
            return self.asc_high, self.desc_high
        return self.asc_low, self.desc_low

    def update(self, position: int) -> bool:
        """
        Fold pivot `position` into the run counters.

        Returns:
            True if a run of the opposite direction was reset
        """
        if position < 2:
            return False

        current = float(self.pivots.prices[position])
        previous = float(self.pivots.prices[position - 2])
        ascending, descending = self._runs_for(position)

        if current > previous:
            growing, opposite = ascending, descending
        elif current < previous:
            growing, opposite = descending, ascending
        else:
            return False

        growing.extend(position - 2,
                       float(self.pivots.times[position - 2]),
                       previous)

        if opposite.count > 0:
            opposite.reset()
            self.resets += 1
            logger.debug("Trend reversal at pivot %d", position)
            return True
        return False

    def counts(self) -> dict:
        return {
            'asc_low': self.asc_low.count,
            'asc_high': self.asc_high.count,
            'desc_low': self.desc_low.count,
            'desc_high': self.desc_high.count,
        }

    def attach_prior_trend(self, candidate: Any) -> None:
        """SHS follows ascending lows, iSHS follows descending highs."""
        run = self.asc_low if candidate.kind is PatternKind.SHS else self.desc_high
        candidate.prior_trend = TrendSnapshot.from_run(run, complete=True)

    def _following_runs(self, kind: PatternKind) -> Tuple[TrendRun, TrendRun]:
        if kind is PatternKind.SHS:
            return self.desc_low, self.desc_high
        return self.asc_low, self.asc_high

    def attach_following_trend(self, candidates: Iterable[Any], final: bool = False) -> int:
        """
        Refresh the following trend of open, confirmed candidates.

        The longer of the two relevant runs is copied (ties go to the low
        run). A snapshot completes once either run reaches the threshold, or
        unconditionally when `final` is set at end of stream.

        Returns:
            Number of candidates updated
        """
        updated = 0
        for candidate in candidates:
            if candidate.finalized or not candidate.confirmed:
                continue
            if candidate.following_trend.complete:
                continue

            low, high = self._following_runs(candidate.kind)
            if low.count > 0 or high.count > 0:
                chosen = low if low.count >= high.count else high
                candidate.following_trend = TrendSnapshot.from_run(chosen)
                if max(low.count, high.count) >= self.following_threshold:
                    candidate.following_trend.complete = True
            if final:
                candidate.following_trend.complete = True
            updated += 1
        return updated


def local_trend(pivots: PivotSeries, kind: PatternKind, position: int,
                walk_limit: Optional[int] = None) -> Tuple[TrendSnapshot, TrendSnapshot]:
    """
    Prior and following trend of one candidate from a bounded local walk.

    The prior run walks backward from the candidate's first pivot while
    pivots two apart keep rising (SHS) or falling (iSHS). The following
    run walks forward from the right shoulder while they keep falling (SHS)
    or rising (iSHS).

    Args:
        pivots: Pivot view
        kind: Candidate kind
        position: Pivot position of the candidate's first point
        walk_limit: Maximum steps in either direction (None = unbounded)

    Returns:
        Tuple of (prior_snapshot, following_snapshot)
    """
    prices = pivots.prices
    times = pivots.times
    s = kind.sign
    steps_max = walk_limit if walk_limit is not None else len(pivots)

    prior = TrendSnapshot(complete=True)
    rev = position
    steps = 0
    while rev - 2 >= 0 and steps < steps_max:
        if s * (float(prices[rev]) - float(prices[rev - 2])) > 0:
            steps += 1
            prior = TrendSnapshot(start_price=float(prices[rev - 2]),
                                  start_time=float(times[rev - 2]),
                                  run_length=steps, complete=True)
            rev -= 2
        else:
            break

    following = TrendSnapshot(complete=True)
    shoulder = position + PATTERN_SIZE - 1
    fwd = shoulder
    steps = 0
    while fwd + 2 < len(pivots) and steps < steps_max:
        if s * (float(prices[fwd]) - float(prices[fwd + 2])) > 0:
            steps += 1
            fwd += 2
        else:
            break
    if steps:
        following = TrendSnapshot(start_price=float(prices[shoulder]),
                                  start_time=float(times[shoulder]),
                                  run_length=steps, complete=True)

    return prior, following
