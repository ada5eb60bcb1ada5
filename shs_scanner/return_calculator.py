"""
Return Calculator
=================

EVALUATION LAYER - reads samples after the confirmed breakout.

Once a candidate's breakout is confirmed, the samples that follow it are
walked once, in order, and eleven return slots are filled:

1. FIXED WINDOWS: elapsed time since the breakout strictly exceeds
   1, 3, 5, 10, 30, 60 time units.

2. RELATIVE WINDOWS: elapsed time strictly exceeds L/3, L/2, L, 2L, 4L
   where L is the pattern length (breakout time minus the time of the
   candidate's first pivot).

Each slot is filled by the first sample past its threshold and never
overwritten. Slots the series is too short to reach stay NaN.

RETURN FORMULA:
---------------
    r = price / breakout_price          (SHS, bearish)
    r = breakout_price / price          (iSHS, bullish, when invert_bullish)

The first fixed slot stores log(r) when first_window_log is set; all
other slots store r.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .series_normalizer import OriginalSeries
from .shape_matcher import PatternKind

logger = logging.getLogger(__name__)


@dataclass
class ReturnConfig:
    """Configuration for post-breakout returns"""
    fixed_windows: Tuple[float, ...] = (1, 3, 5, 10, 30, 60)
    relative_multipliers: Tuple[float, ...] = (1 / 3, 1 / 2, 1, 2, 4)

    # Formula switches
    first_window_log: bool = True
    invert_bullish: bool = True

    # Floor for the pattern length L
    min_pattern_length: float = 1.0


def _relative_label(multiplier: float) -> str:
    if multiplier >= 1 and float(multiplier).is_integer():
        return f"ret_{int(multiplier)}L"
    reciprocal = 1.0 / multiplier
    if abs(reciprocal - round(reciprocal)) < 1e-9:
        return f"ret_L_{int(round(reciprocal))}"
    return f"ret_{multiplier:g}L"


def slot_labels(config: ReturnConfig) -> Tuple[List[str], List[str]]:
    """Stable column names for the fixed and relative slots."""
    fixed = [f"ret_{w:g}" for w in config.fixed_windows]
    relative = [_relative_label(m) for m in config.relative_multipliers]
    return fixed, relative


class ReturnTracker:
    """
    Incremental filler for the return slots of one confirmed candidate.

    `advance` may be called repeatedly with growing bounds. Scanning stops
    for good once every slot is filled.
    """

    def __init__(self, series: OriginalSeries, kind: PatternKind,
                 breakout_index: int, breakout_time: float, breakout_price: float,
                 pattern_start_time: float, config: Optional[ReturnConfig] = None):
        self.series = series
        self.kind = kind
        self.config = config or ReturnConfig()
        self.breakout_time = float(breakout_time)
        self.breakout_price = float(breakout_price)
        self.pattern_length = max(self.breakout_time - float(pattern_start_time),
                                  self.config.min_pattern_length)

        self.thresholds = (
            [float(w) for w in self.config.fixed_windows] +
            [float(m) * self.pattern_length for m in self.config.relative_multipliers]
        )
        self.values = [math.nan] * len(self.thresholds)
        self.filled = [False] * len(self.thresholds)
        self.cursor = int(breakout_index) + 1

    @property
    def complete(self) -> bool:
        return all(self.filled)

    @property
    def returns_fixed(self) -> List[float]:
        return self.values[:len(self.config.fixed_windows)]

    @property
    def returns_relative(self) -> List[float]:
        return self.values[len(self.config.fixed_windows):]

    def _value(self, slot: int, price: float) -> float:
        if self.kind is PatternKind.ISHS and self.config.invert_bullish:
            numerator, denominator = self.breakout_price, price
        else:
            numerator, denominator = price, self.breakout_price
        if denominator == 0:
            logger.debug("Zero price in return slot %d, storing NaN", slot)
            return math.nan
        ratio = numerator / denominator
        if slot == 0 and self.config.first_window_log:
            return math.log(ratio) if ratio > 0 else math.nan
        return ratio

    def advance(self, stop: int) -> bool:
        """
        Walk samples from the cursor up to (not including) `stop`.

        Returns:
            True once every slot is filled
        """
        if self.complete:
            return True

        times = self.series.times
        prices = self.series.prices
        limit = min(int(stop), len(self.series))

        j = self.cursor
        while j < limit:
            elapsed = float(times[j]) - self.breakout_time
            price = float(prices[j])
            for slot, threshold in enumerate(self.thresholds):
                if not self.filled[slot] and elapsed > threshold:
                    self.values[slot] = self._value(slot, price)
                    self.filled[slot] = True
            j += 1
            if self.complete:
                logger.debug("%s return slots complete at sample %d", self.kind.value, j - 1)
                break

        self.cursor = j
        return self.complete


def _finite(values: Iterable[float]) -> List[float]:
    return [float(v) for v in values if v is not None and np.isfinite(v)]


class StatisticsAggregator:
    """
    Aggregates pattern records into summary statistics.
    """

    def __init__(self, config: Optional[ReturnConfig] = None):
        self.config = config or ReturnConfig()

    def aggregate(self, records: List[Any]) -> Dict[str, Any]:
        """
        Aggregate pattern records into summary statistics.

        Records need `pattern_name`, `valid`, `returns_fixed`,
        `returns_relative`, `prior_trend` and `following_trend`.
        """
        if not records:
            return {'total_patterns': 0}

        valid = [r for r in records if r.valid]

        stats = {
            'total_patterns': len(records),
            'valid_patterns': len(valid),
            'invalid_patterns': len(records) - len(valid),
            'by_pattern_name': pd.Series([r.pattern_name for r in records]).value_counts().to_dict(),
        }

        if not valid:
            return stats

        # === RETURNS ===
        fixed_labels, relative_labels = slot_labels(self.config)
        returns = {}
        for k, label in enumerate(fixed_labels):
            returns[label] = self._summarize(_finite(r.returns_fixed[k] for r in valid))
        for k, label in enumerate(relative_labels):
            returns[label] = self._summarize(_finite(r.returns_relative[k] for r in valid))
        stats['returns'] = returns

        # === TRENDS ===
        stats['avg_prior_run_length'] = float(np.mean([r.prior_trend.run_length for r in valid]))
        stats['avg_following_run_length'] = float(np.mean([r.following_trend.run_length for r in valid]))

        # === BY PATTERN TYPE ===
        by_pattern = {}
        for pattern_name in sorted(set(r.pattern_name for r in valid)):
            pattern_records = [r for r in valid if r.pattern_name == pattern_name]
            by_pattern[pattern_name] = self._aggregate_pattern(pattern_records)
        stats['by_pattern'] = by_pattern

        return stats

    @staticmethod
    def _summarize(values: List[float]) -> Dict[str, Any]:
        if not values:
            return {'count': 0, 'mean': None, 'median': None}
        return {
            'count': len(values),
            'mean': float(np.mean(values)),
            'median': float(np.median(values)),
        }

    def _aggregate_pattern(self, records: List[Any]) -> Dict[str, Any]:
        """Aggregate statistics for a single pattern type"""
        first = _finite(r.returns_fixed[0] for r in records)
        return {
            'count': len(records),
            'avg_first_window_return': float(np.mean(first)) if first else None,
            'avg_pattern_length': float(np.mean([r.pattern_length for r in records])),
        }
