"""
Breakout / Invalidation Engine
------------------------------
Per-candidate state machine replayed against the full-resolution series.

Scanning starts at the sample after the right shoulder. At each sample j:
    1. invalidation (not checked at the first sample): price beyond the
       right shoulder, above it for SHS and below it for iSHS
    2. breakout: price[j] crosses the neckline AND price[j+1] is still on
       the breakout side of the right shoulder; the breakout sample is j+1

A neckline touch alone never confirms: the next sample must also hold
beyond the shoulder price. The monitor is incremental, `advance` can be
called repeatedly with growing bounds and never rescans a sample.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .geometry import Neckline
from .series_normalizer import OriginalSeries
from .shape_matcher import PatternKind

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    MONITORING = "monitoring"
    INVALIDATED = "invalidated"
    BREAKOUT_CONFIRMED = "breakout_confirmed"


@dataclass(frozen=True)
class Breakout:
    """Confirmed breakout sample in the original series"""
    index: int
    time: float
    price: float
    crossing_time: Optional[float] = None
    crossing_price: Optional[float] = None


class BreakoutMonitor:
    """
    Tracks one candidate from its right shoulder to a terminal state.

    Terminal states are INVALIDATED and BREAKOUT_CONFIRMED. A monitor still
    in MONITORING when the series runs out is unresolved.
    """

    def __init__(self, kind: PatternKind, neckline: Neckline,
                 shoulder_price: float, shoulder_index: int):
        self.kind = kind
        self.neckline = neckline
        self.shoulder_price = float(shoulder_price)
        self.start = int(shoulder_index) + 1
        self.cursor = self.start
        self.state = LifecycleState.MONITORING
        self.breakout: Optional[Breakout] = None
        self.invalidated_at: Optional[int] = None

    @property
    def resolved(self) -> bool:
        return self.state is not LifecycleState.MONITORING

    @property
    def confirmed(self) -> bool:
        return self.state is LifecycleState.BREAKOUT_CONFIRMED

    def exhausted(self, series: OriginalSeries) -> bool:
        """True when no further sample can produce a breakout."""
        return not self.resolved and self.cursor >= len(series) - 1

    def advance(self, series: OriginalSeries, stop: int) -> LifecycleState:
        """
        Scan samples from the cursor up to (not including) `stop`.

        The last sample is never a scan position because breakout
        confirmation reads one sample ahead.
        """
        if self.resolved:
            return self.state

        times = series.times
        prices = series.prices
        s = self.kind.sign
        limit = min(int(stop), len(series) - 1)

        j = self.cursor
        while j < limit:
            price_j = float(prices[j])

            if j != self.start and s * (price_j - self.shoulder_price) > 0:
                self.state = LifecycleState.INVALIDATED
                self.invalidated_at = j
                logger.debug("%s candidate invalidated at sample %d", self.kind.value, j)
                break

            neckline_j = self.neckline.value_at(float(times[j]))
            if (s * (neckline_j - price_j) > 0 and
                    s * (self.shoulder_price - float(prices[j + 1])) > 0):
                self.state = LifecycleState.BREAKOUT_CONFIRMED
                self.breakout = Breakout(
                    index=j + 1,
                    time=float(times[j + 1]),
                    price=float(prices[j + 1]),
                    crossing_time=float(times[j]),
                    crossing_price=price_j,
                )
                logger.debug("%s breakout confirmed at sample %d", self.kind.value, j + 1)
                break

            j += 1

        self.cursor = j
        return self.state
