"""
Pytest Configuration and Shared Fixtures - SHS Pattern Scanner

Synthetic series with one sample per time unit. Pivot indices equal pivot
times, and samples between pivots are linearly interpolated unless
overridden.
"""

import logging
from typing import Dict, Optional, Sequence

import numpy as np
import pytest

from shs_scanner.series_normalizer import PivotSeries

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Canonical SHS: neckline through (10, 110) and (20, 115), value 118 at t=26
SHS_PIVOT_TIMES = [0, 5, 10, 15, 20, 25, 30]
SHS_PIVOT_PRICES = [100.0, 130.0, 110.0, 150.0, 115.0, 125.0, 90.0]
SHS_BREAKOUT = {26: 116.0, 27: 110.0, 28: 100.0, 29: 95.0}


def build_series(pivot_times: Sequence[int], pivot_prices: Sequence[float],
                 overrides: Optional[Dict[int, float]] = None,
                 length: Optional[int] = None):
    """Return (pivot_indices, times, prices) for a unit-step series."""
    length = length or pivot_times[-1] + 1
    times = np.arange(length, dtype=float)
    prices = np.interp(times, pivot_times, pivot_prices)
    for t, price in (overrides or {}).items():
        prices[t] = price
    return list(pivot_times), times, prices


def rising_tail(start: int = 31, stop: int = 100) -> Dict[int, float]:
    return {t: 90.0 + 0.5 * (t - 30) for t in range(start, stop)}


def pivot_series(prices: Sequence[float]) -> PivotSeries:
    n = len(prices)
    return PivotSeries(index=np.arange(n), times=np.arange(n, dtype=float),
                       prices=np.asarray(prices, dtype=float))


@pytest.fixture
def shs_series():
    """Canonical SHS confirmed at t=27, followed by a slow rise to t=99."""
    overrides = dict(SHS_BREAKOUT)
    overrides.update(rising_tail())
    return build_series(SHS_PIVOT_TIMES, SHS_PIVOT_PRICES, overrides, length=100)


@pytest.fixture
def ishs_series(shs_series):
    """The SHS fixture mirrored around 250."""
    pivots, times, prices = shs_series
    return pivots, times, 250.0 - prices


@pytest.fixture
def zigzag_series():
    """Random zig-zag with many overlapping windows."""
    rng = np.random.RandomState(7)
    n_pivots = 80
    gaps = rng.randint(2, 7, size=n_pivots - 1)
    pivot_times = np.concatenate([[0], np.cumsum(gaps)]).astype(int)

    level = 100.0
    pivot_prices = []
    for k in range(n_pivots):
        level += rng.normal(0, 2)
        swing = rng.uniform(3, 12)
        pivot_prices.append(level + swing if k % 2 else level - swing)

    length = int(pivot_times[-1]) + 40
    times = np.arange(length, dtype=float)
    prices = np.interp(times, pivot_times, pivot_prices)
    prices[int(pivot_times[-1]) + 1:] += np.cumsum(rng.normal(0, 1, size=39))
    return list(pivot_times), times, prices
