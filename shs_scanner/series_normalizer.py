"""
Series Normalizer Module
Validates the original series and the pivot index set before scanning
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

MIN_PIVOTS = 7


class InputContractError(ValueError):
    """Raised when the inputs violate the scanner's input contract."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


@dataclass
class NormalizationConfig:
    """Configuration for input validation"""
    min_pivots: int = MIN_PIVOTS
    require_finite_prices: bool = True
    warn_nonzero_first_pivot: bool = True


@dataclass(frozen=True)
class PivotSeries:
    """
    Read-only view of the pivots inside the original series.

    Even positions are troughs and odd positions are peaks in a zig-zag
    pivot sequence.
    """
    index: np.ndarray
    times: np.ndarray
    prices: np.ndarray

    def __len__(self) -> int:
        return len(self.index)

    def orig_index(self, position: int) -> int:
        return int(self.index[position])

    @staticmethod
    def is_high(position: int) -> bool:
        return position % 2 != 0


@dataclass(frozen=True)
class OriginalSeries:
    """Full-resolution samples; time strictly increasing."""
    times: np.ndarray
    prices: np.ndarray

    def __len__(self) -> int:
        return len(self.times)


def _as_array(values, dtype) -> np.ndarray:
    if isinstance(values, (pd.Series, pd.Index)):
        values = values.to_numpy()
    return np.asarray(values, dtype=dtype)


class SeriesNormalizer:
    """
    Normalizes scanner inputs into numpy arrays.

    Handles:
    - pandas Series / lists / arrays as input
    - pivot count and array length checks
    - pivot index range and ordering
    - monotonic, finite time axis
    """

    def __init__(self, config: Optional[NormalizationConfig] = None):
        self.config = config or NormalizationConfig()
        self.stats = {}

    def normalize(self, pivot_indices: Sequence[int], times: Sequence[float],
                  prices: Sequence[float]) -> Tuple[OriginalSeries, PivotSeries, dict]:
        """
        Validate and convert the scanner inputs.

        Args:
            pivot_indices: Ordered indices of the pivots in the original series
            times: Original sample times
            prices: Original sample prices

        Returns:
            Tuple of (original_series, pivot_series, stats_dict)

        Raises:
            InputContractError: if any precondition is violated
        """
        index = _as_array(pivot_indices, np.float64)
        t = _as_array(times, np.float64)
        p = _as_array(prices, np.float64)

        self.stats = {
            'rows_input': int(t.size),
            'pivots_input': int(index.size),
        }

        # 1. Sizes
        if index.ndim != 1 or index.size < self.config.min_pivots:
            raise InputContractError(
                'too_few_pivots',
                f"Need at least {self.config.min_pivots} pivots, got {index.size}")
        if t.ndim != 1 or p.ndim != 1 or t.size != p.size:
            raise InputContractError(
                'length_mismatch',
                f"Time and price series differ in length ({t.size} vs {p.size})")

        # 2. Pivot indices
        if not np.all(np.isfinite(index)) or not np.all(index == np.floor(index)):
            raise InputContractError('non_integer_pivot', "Pivot indices must be integers")
        index = index.astype(np.int64)
        if index.min() < 0 or index.max() >= t.size:
            raise InputContractError(
                'pivot_out_of_range',
                f"Pivot indices must lie in [0, {t.size}), got [{index.min()}, {index.max()}]")
        if np.any(np.diff(index) <= 0):
            raise InputContractError('pivots_not_increasing', "Pivot indices must be strictly increasing")

        # 3. Time axis and prices
        if not np.all(np.isfinite(t)):
            raise InputContractError('non_finite_time', "Time series contains NaN or Inf")
        if np.any(np.diff(t) <= 0):
            raise InputContractError('time_not_increasing', "Time series must be strictly increasing")
        if self.config.require_finite_prices and not np.all(np.isfinite(p)):
            raise InputContractError('non_finite_price', "Price series contains NaN or Inf")

        if self.config.warn_nonzero_first_pivot and index[0] != 0:
            logger.warning("Pivot indices do not start at zero (first=%d).", index[0])

        self.stats['first_pivot_index'] = int(index[0])

        original = OriginalSeries(times=t, prices=p)
        pivots = PivotSeries(index=index, times=t[index], prices=p[index])

        self.stats['rows_output'] = len(original)
        self.stats['pivots_output'] = len(pivots)

        return original, pivots, self.stats.copy()
