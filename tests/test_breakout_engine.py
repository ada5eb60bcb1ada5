"""
Tests for the breakout / invalidation state machine.
"""

import numpy as np

from shs_scanner.breakout_engine import BreakoutMonitor, LifecycleState
from shs_scanner.geometry import Neckline
from shs_scanner.series_normalizer import OriginalSeries
from shs_scanner.shape_matcher import PatternKind

FLAT_NECKLINE = Neckline(t2=0, p2=100, t4=10, p4=100)


def _series(prices):
    prices = np.asarray(prices, dtype=float)
    return OriginalSeries(times=np.arange(len(prices), dtype=float), prices=prices)


def _shs_monitor():
    return BreakoutMonitor(PatternKind.SHS, FLAT_NECKLINE, shoulder_price=110, shoulder_index=0)


class TestBreakoutMonitor:

    def test_breakout_confirmed_on_next_sample(self):
        series = _series([110, 105, 98, 95, 90, 89])
        monitor = _shs_monitor()
        state = monitor.advance(series, stop=len(series))

        assert state is LifecycleState.BREAKOUT_CONFIRMED
        assert monitor.confirmed
        assert monitor.breakout.index == 3
        assert monitor.breakout.time == 3.0
        assert monitor.breakout.price == 95.0

    def test_incremental_advance_matches_single_pass(self):
        series = _series([110, 105, 98, 95, 90, 89])
        monitor = _shs_monitor()
        assert monitor.advance(series, stop=2) is LifecycleState.MONITORING
        assert monitor.cursor == 2
        monitor.advance(series, stop=10)
        assert monitor.breakout.index == 3

    def test_invalidated_above_shoulder(self):
        series = _series([110, 105, 112, 95, 90])
        monitor = _shs_monitor()
        assert monitor.advance(series, stop=len(series)) is LifecycleState.INVALIDATED
        assert monitor.invalidated_at == 2
        assert monitor.breakout is None

    def test_first_sample_is_never_invalidating(self):
        series = _series([110, 115, 99, 95, 90])
        monitor = _shs_monitor()
        monitor.advance(series, stop=len(series))
        assert monitor.confirmed
        assert monitor.breakout.index == 3

    def test_neckline_touch_without_hold_does_not_confirm(self):
        # Crosses the neckline at 1 but the next sample is back above the shoulder
        series = _series([110, 99, 111, 95, 90])
        monitor = _shs_monitor()
        assert monitor.advance(series, stop=len(series)) is LifecycleState.INVALIDATED
        assert monitor.invalidated_at == 2

    def test_last_sample_is_not_a_scan_position(self):
        series = _series([110, 105, 98])
        monitor = _shs_monitor()
        assert monitor.advance(series, stop=len(series)) is LifecycleState.MONITORING
        assert monitor.exhausted(series)

    def test_ishs_mirrors_shs(self):
        series = _series([90, 95, 102, 105, 110, 111])
        monitor = BreakoutMonitor(PatternKind.ISHS, FLAT_NECKLINE, shoulder_price=90, shoulder_index=0)
        monitor.advance(series, stop=len(series))
        assert monitor.confirmed
        assert monitor.breakout.index == 3
        assert monitor.breakout.price == 105.0

    def test_resolved_monitor_does_not_move(self):
        series = _series([110, 105, 98, 95, 90, 89])
        monitor = _shs_monitor()
        monitor.advance(series, stop=len(series))
        cursor = monitor.cursor
        monitor.advance(series, stop=len(series))
        assert monitor.cursor == cursor
        assert monitor.resolved
