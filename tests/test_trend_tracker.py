"""
Tests for the global trend run counters and the local trend walk.
"""

from types import SimpleNamespace

from conftest import pivot_series
from shs_scanner.shape_matcher import PatternKind
from shs_scanner.trend_tracker import TrendRun, TrendSnapshot, TrendTracker, local_trend


def _candidate(kind=PatternKind.SHS, confirmed=True, finalized=False):
    return SimpleNamespace(kind=kind, confirmed=confirmed, finalized=finalized,
                           prior_trend=TrendSnapshot(), following_trend=TrendSnapshot())


class TestTrendTracker:

    def test_runs_grow_per_parity(self):
        tracker = TrendTracker(pivot_series([10, 20, 11, 21, 12, 22]))
        resets = [tracker.update(i) for i in range(6)]

        assert resets == [False] * 6
        assert tracker.counts() == {'asc_low': 2, 'asc_high': 2, 'desc_low': 0, 'desc_high': 0}
        assert tracker.asc_low.first_price == 10.0
        assert tracker.asc_low.first_time == 0.0
        assert tracker.asc_high.first_index == 1

    def test_reversal_resets_opposite_run(self):
        tracker = TrendTracker(pivot_series([10, 20, 11, 21, 12, 22, 11]))
        resets = [tracker.update(i) for i in range(7)]

        assert resets[-1] is True
        assert tracker.asc_low.count == 0
        assert tracker.asc_low.first_price is None
        assert tracker.desc_low.count == 1
        assert tracker.desc_low.first_price == 12.0
        assert tracker.resets == 1

    def test_equal_prices_leave_runs_alone(self):
        tracker = TrendTracker(pivot_series([10, 20, 10, 20]))
        for i in range(4):
            assert tracker.update(i) is False
        assert sum(tracker.counts().values()) == 0

    def test_one_direction_per_parity(self, zigzag_series):
        pivots, _, prices = zigzag_series
        tracker = TrendTracker(pivot_series(prices[pivots]))
        for i in range(len(pivots)):
            counts_before = tracker.counts()
            if tracker.update(i):
                ascending = "asc_high" if i % 2 else "asc_low"
                descending = "desc_high" if i % 2 else "desc_low"
                after = tracker.counts()
                grown = ascending if after[ascending] > counts_before[ascending] else descending
                assert after[grown] == 1
            assert not (tracker.asc_low.count and tracker.desc_low.count)
            assert not (tracker.asc_high.count and tracker.desc_high.count)

    def test_prior_trend_by_kind(self):
        tracker = TrendTracker(pivot_series([10, 20, 11, 21, 12, 22]))
        for i in range(6):
            tracker.update(i)

        shs = _candidate(PatternKind.SHS)
        tracker.attach_prior_trend(shs)
        assert shs.prior_trend.run_length == 2
        assert shs.prior_trend.start_price == 10.0
        assert shs.prior_trend.complete

        ishs = _candidate(PatternKind.ISHS)
        tracker.attach_prior_trend(ishs)
        assert ishs.prior_trend.run_length == 0
        assert ishs.prior_trend.start_price is None


class TestFollowingTrend:

    def _tracker(self, low=0, high=0, kind=PatternKind.SHS):
        tracker = TrendTracker(pivot_series([1, 2, 3]))
        lows = tracker.desc_low if kind is PatternKind.SHS else tracker.asc_low
        highs = tracker.desc_high if kind is PatternKind.SHS else tracker.asc_high
        for k in range(low):
            lows.extend(2 * k, float(2 * k), 50.0 - k)
        for k in range(high):
            highs.extend(2 * k + 1, float(2 * k + 1), 60.0 - k)
        return tracker

    def test_tie_prefers_low_run(self):
        tracker = self._tracker(low=2, high=2)
        candidate = _candidate()
        assert tracker.attach_following_trend([candidate]) == 1
        assert candidate.following_trend.start_price == 50.0
        assert candidate.following_trend.run_length == 2
        assert not candidate.following_trend.complete

    def test_longer_high_run_wins(self):
        tracker = self._tracker(low=1, high=2)
        candidate = _candidate()
        tracker.attach_following_trend([candidate])
        assert candidate.following_trend.start_price == 60.0

    def test_threshold_completes(self):
        tracker = self._tracker(low=3, high=0)
        candidate = _candidate()
        tracker.attach_following_trend([candidate])
        assert candidate.following_trend.complete
        assert candidate.following_trend.run_length == 3

    def test_complete_snapshot_is_frozen(self):
        tracker = self._tracker(low=3)
        candidate = _candidate()
        tracker.attach_following_trend([candidate])
        tracker.desc_low.extend(6, 6.0, 40.0)
        tracker.attach_following_trend([candidate])
        assert candidate.following_trend.run_length == 3

    def test_final_flush_forces_completion(self):
        tracker = self._tracker(low=1)
        candidate = _candidate()
        tracker.attach_following_trend([candidate], final=True)
        assert candidate.following_trend.complete
        assert candidate.following_trend.run_length == 1

    def test_ishs_reads_ascending_runs(self):
        tracker = self._tracker(low=0, high=1, kind=PatternKind.ISHS)
        candidate = _candidate(PatternKind.ISHS)
        tracker.attach_following_trend([candidate])
        assert candidate.following_trend.start_price == 60.0

    def test_skips_unconfirmed_and_finalized(self):
        tracker = self._tracker(low=3)
        pending = _candidate(confirmed=False)
        done = _candidate(finalized=True)
        assert tracker.attach_following_trend([pending, done]) == 0
        assert pending.following_trend.run_length == 0
        assert done.following_trend.run_length == 0


class TestLocalTrend:

    def test_walks_both_directions(self):
        # Rising lows before position 4, falling highs after the shoulder at 9
        prices = [90, 120, 95, 125, 100, 130, 110, 150, 115, 125, 80, 120, 70, 110]
        pivots = pivot_series(prices)
        prior, following = local_trend(pivots, PatternKind.SHS, 4)

        assert prior.run_length == 2
        assert prior.start_price == 90.0
        assert following.run_length == 2
        assert following.start_price == 125.0
        assert prior.complete and following.complete

    def test_walk_limit(self):
        prices = [90, 120, 95, 125, 100, 130, 110, 150, 115, 125, 80, 120, 70, 110]
        prior, following = local_trend(pivot_series(prices), PatternKind.SHS, 4, walk_limit=1)
        assert prior.run_length == 1
        assert prior.start_price == 95.0
        assert following.run_length == 1

    def test_empty_walk(self):
        prices = [100, 130, 110, 150, 115, 125, 90]
        prior, following = local_trend(pivot_series(prices), PatternKind.SHS, 0)
        assert prior.run_length == 0
        assert following.run_length == 0
        assert following.start_price is None


def test_trend_run_reset():
    run = TrendRun()
    run.extend(4, 4.0, 12.5)
    run.extend(6, 6.0, 13.0)
    assert (run.count, run.first_index, run.first_price) == (2, 4, 12.5)
    run.reset()
    assert run.count == 0 and run.first_time is None


def test_snapshot_to_dict():
    snapshot = TrendSnapshot(start_price=1.5, start_time=3.0, run_length=2, complete=True)
    assert snapshot.to_dict() == {'start_price': 1.5, 'start_time': 3.0,
                                  'run_length': 2, 'complete': True}
