"""
Pattern Scanner
---------------
Coordinates input validation, shape matching, breakout monitoring, trend
tracking and return calculation over one pivot stream.

The sequential engine visits pivot positions in order. At each position the
global trend tracker is updated first, then a new candidate may be opened,
then every open candidate whose right shoulder has already been seen is
driven forward through the original series up to the current pivot. When the
stream ends, open candidates are driven to the last sample and the trailing
trend context is flushed.

The parallel engine (`ScannerConfig.parallel`) evaluates each start position
independently on a thread pool. Shape, breakout and return fields match the
sequential engine; trend fields come from a local walk around each candidate
and may differ.
"""

import hashlib
import json
import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .breakout_engine import BreakoutMonitor, LifecycleState
from .geometry import DEFAULT_EPSILON, Neckline
from .return_calculator import ReturnConfig, ReturnTracker, StatisticsAggregator, slot_labels
from .series_normalizer import (
    InputContractError,
    NormalizationConfig,
    OriginalSeries,
    PivotSeries,
    SeriesNormalizer,
)
from .shape_matcher import (
    PATTERN_SIZE, PatternKind, ShapeFeatures, match_shape, neckline_for, shape_features, with_breakout_leg,
)
from .trend_tracker import FOLLOWING_TREND_THRESHOLD, TrendSnapshot, TrendTracker, local_trend

logger = logging.getLogger(__name__)


@dataclass
class ScannerConfig:
    """Configuration for pattern scanner"""
    # Geometry
    epsilon: float = DEFAULT_EPSILON

    # Trend context
    following_trend_threshold: int = FOLLOWING_TREND_THRESHOLD
    trend_walk_limit: Optional[int] = None  # parallel mode only

    # Returns
    returns: ReturnConfig = field(default_factory=ReturnConfig)

    # Execution
    parallel: bool = False
    max_workers: Optional[int] = None
    progress_every: int = 500

    EXECUTION_FIELDS = ('parallel', 'max_workers', 'progress_every')

    def config_hash(self) -> str:
        """Hash of the fields that affect detection results."""
        rules = {k: v for k, v in asdict(self).items() if k not in self.EXECUTION_FIELDS}
        payload = json.dumps(rules, sort_keys=True, default=str).encode("utf-8")
        return hashlib.md5(payload).hexdigest()[:8]


@dataclass
class PatternCandidate:
    """Arena entry for one matched shape while it is being tracked"""
    kind: PatternKind
    position: int
    start_index: int
    times: Tuple[float, ...]
    prices: Tuple[float, ...]
    neckline: Neckline
    monitor: BreakoutMonitor
    features: ShapeFeatures
    prior_trend: TrendSnapshot = field(default_factory=TrendSnapshot)
    following_trend: TrendSnapshot = field(default_factory=TrendSnapshot)
    returns: Optional[ReturnTracker] = None
    finalized: bool = False

    @property
    def confirmed(self) -> bool:
        return self.monitor.confirmed

    @property
    def shoulder_position(self) -> int:
        return self.position + PATTERN_SIZE - 1


@dataclass
class PatternRecord:
    """Represents a detected pattern"""
    # Identity
    pattern_name: str
    valid: bool
    state: str

    # Location
    start_index_pivot: int
    start_index_original: int
    right_shoulder_index_pivot: int
    right_shoulder_index_original: int
    breakout_index_original: Optional[int]

    # Points
    times: List[float]
    prices: List[float]
    breakout_time: Optional[float]
    breakout_price: Optional[float]

    # Context
    prior_trend: TrendSnapshot
    following_trend: TrendSnapshot

    # Returns
    returns_fixed: List[float]
    returns_relative: List[float]
    pattern_length: Optional[float]

    # Features
    features: ShapeFeatures

    # Metadata
    config_hash: str
    fixed_labels: List[str] = field(default_factory=list, repr=False, compare=False)
    relative_labels: List[str] = field(default_factory=list, repr=False, compare=False)

    def to_dict(self) -> dict:
        """Flat mapping with stable keys, one row per record."""
        row = {
            'pattern_name': self.pattern_name,
            'valid': self.valid,
            'state': self.state,
            'start_index_pivot': self.start_index_pivot,
            'start_index_original': self.start_index_original,
            'right_shoulder_index_pivot': self.right_shoulder_index_pivot,
            'right_shoulder_index_original': self.right_shoulder_index_original,
            'breakout_index_original': self.breakout_index_original,
        }
        for k in range(PATTERN_SIZE):
            row[f't{k}'] = self.times[k]
            row[f'p{k}'] = self.prices[k]
        row['breakout_time'] = self.breakout_time
        row['breakout_price'] = self.breakout_price

        for prefix, snapshot in (('prior', self.prior_trend), ('following', self.following_trend)):
            for key, value in snapshot.to_dict().items():
                row[f'{prefix}_{key}'] = value

        fixed_labels = self.fixed_labels or [f'ret_fixed_{k}' for k in range(len(self.returns_fixed))]
        relative_labels = self.relative_labels or [f'ret_relative_{k}' for k in range(len(self.returns_relative))]
        row.update(zip(fixed_labels, self.returns_fixed))
        row.update(zip(relative_labels, self.returns_relative))
        row['pattern_length'] = self.pattern_length

        features = self.features.to_dict()
        for k, value in enumerate(features.pop('leg_slopes'), start=1):
            row[f'leg_slope_{k}'] = value
        for k, value in enumerate(features.pop('leg_durations'), start=1):
            row[f'leg_duration_{k}'] = value
        row.update(features)

        row['config_hash'] = self.config_hash
        return row


@dataclass
class ScanResult:
    """Records of one scan plus run statistics"""
    records: List[PatternRecord] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)
    error: Optional[InputContractError] = None
    return_config: ReturnConfig = field(default_factory=ReturnConfig, repr=False)

    @property
    def is_empty(self) -> bool:
        return not self.records

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[PatternRecord]:
        return iter(self.records)

    def summary(self) -> Dict[str, Any]:
        return StatisticsAggregator(self.return_config).aggregate(self.records)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([r.to_dict() for r in self.records])


class PatternScanner:
    """
    Main scanner for SHS / iSHS patterns over a pivot stream.
    """

    def __init__(self, config: Optional[ScannerConfig] = None,
                 normalization: Optional[NormalizationConfig] = None):
        self.config = config or ScannerConfig()
        self.normalizer = SeriesNormalizer(normalization)
        self.config_hash = self.config.config_hash()

    def scan(self, pivot_indices: Sequence[int], times: Sequence[float],
             prices: Sequence[float]) -> ScanResult:
        """
        Scan one series for SHS / iSHS patterns.

        Args:
            pivot_indices: Ordered indices of the pivots in the original series
            times: Original sample times, strictly increasing
            prices: Original sample prices

        Returns:
            ScanResult; empty with `error` set if the inputs are invalid
        """
        try:
            original, pivots, norm_stats = self.normalizer.normalize(pivot_indices, times, prices)
        except InputContractError as e:
            logger.warning("Input contract violation (%s): %s", e.reason, e)
            return ScanResult(stats={'error': e.reason}, error=e,
                              return_config=self.config.returns)

        if self.config.parallel:
            candidates, trend_resets = self._scan_parallel(original, pivots), None
        else:
            candidates, trend_resets = self._scan_sequential(original, pivots)

        records = [self._finalize(c) for c in candidates]

        stats = dict(norm_stats)
        stats.update({
            'mode': 'parallel' if self.config.parallel else 'sequential',
            'candidates': len(records),
            'shs': sum(1 for r in records if r.pattern_name == PatternKind.SHS.value),
            'ishs': sum(1 for r in records if r.pattern_name == PatternKind.ISHS.value),
            'confirmed': sum(1 for r in records if r.valid),
            'invalidated': sum(1 for r in records if r.state == LifecycleState.INVALIDATED.value),
            'unresolved': sum(1 for r in records if r.state == LifecycleState.MONITORING.value),
        })
        if trend_resets is not None:
            stats['trend_resets'] = trend_resets

        logger.info("Scan complete: %d candidates (%d SHS, %d iSHS), %d confirmed, %d invalidated",
                    stats['candidates'], stats['shs'], stats['ishs'],
                    stats['confirmed'], stats['invalidated'])

        return ScanResult(records=records, stats=stats, return_config=self.config.returns)

    def _detect(self, pivots: PivotSeries, position: int) -> Optional[PatternCandidate]:
        eps = self.config.epsilon
        kind = match_shape(pivots, position, eps)
        if kind is None:
            return None

        shoulder = position + PATTERN_SIZE - 1
        neckline = neckline_for(pivots, position, eps)
        monitor = BreakoutMonitor(kind, neckline,
                                  shoulder_price=float(pivots.prices[shoulder]),
                                  shoulder_index=pivots.orig_index(shoulder))
        window = slice(position, position + PATTERN_SIZE)
        return PatternCandidate(
            kind=kind,
            position=position,
            start_index=pivots.orig_index(position),
            times=tuple(float(t) for t in pivots.times[window]),
            prices=tuple(float(p) for p in pivots.prices[window]),
            neckline=neckline,
            monitor=monitor,
            features=shape_features(pivots, position, eps),
        )

    def _drive(self, candidate: PatternCandidate, original: OriginalSeries, stop: int) -> None:
        monitor = candidate.monitor
        if not monitor.resolved:
            monitor.advance(original, stop)
            if monitor.confirmed:
                b = monitor.breakout
                candidate.returns = ReturnTracker(
                    original, candidate.kind, b.index, b.time, b.price,
                    pattern_start_time=candidate.times[0],
                    config=self.config.returns,
                )
        if candidate.returns is not None:
            candidate.returns.advance(stop)

    @staticmethod
    def _settled(candidate: PatternCandidate) -> bool:
        if candidate.monitor.state is LifecycleState.INVALIDATED:
            return True
        if candidate.confirmed:
            return candidate.returns.complete and candidate.following_trend.complete
        return False

    def _scan_sequential(self, original: OriginalSeries,
                         pivots: PivotSeries) -> Tuple[List[PatternCandidate], int]:
        M = len(pivots)
        tracker = TrendTracker(pivots, self.config.following_trend_threshold)
        arena: List[PatternCandidate] = []
        open_candidates: List[PatternCandidate] = []

        for i in range(M):
            if tracker.update(i):
                tracker.attach_following_trend(open_candidates)

            # A pivot after the right shoulder must exist
            if i < M - PATTERN_SIZE:
                candidate = self._detect(pivots, i)
                if candidate is not None:
                    tracker.attach_prior_trend(candidate)
                    arena.append(candidate)
                    open_candidates.append(candidate)
                    logger.debug("%s candidate opened at pivot %d", candidate.kind.value, i)

            stop = pivots.orig_index(i)
            for candidate in open_candidates:
                if candidate.shoulder_position <= i:
                    self._drive(candidate, original, stop)
                    if self._settled(candidate):
                        candidate.finalized = True
            open_candidates = [c for c in open_candidates if not c.finalized]

            if self.config.progress_every and (i + 1) % self.config.progress_every == 0:
                logger.debug("Processed %d/%d pivots, %d open candidates",
                             i + 1, M, len(open_candidates))

        # End of stream
        for candidate in open_candidates:
            self._drive(candidate, original, len(original))
        tracker.attach_following_trend(open_candidates, final=True)

        return arena, tracker.resets

    def _scan_parallel(self, original: OriginalSeries,
                       pivots: PivotSeries) -> List[PatternCandidate]:
        sink: List[PatternCandidate] = []
        lock = threading.Lock()

        def work(position: int) -> None:
            candidate = self._detect(pivots, position)
            if candidate is None:
                return
            self._drive(candidate, original, len(original))
            prior, following = local_trend(pivots, candidate.kind, position,
                                           self.config.trend_walk_limit)
            candidate.prior_trend = prior
            if candidate.confirmed:
                candidate.following_trend = following
            with lock:
                sink.append(candidate)

        positions = range(max(len(pivots) - PATTERN_SIZE, 0))
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            future_to_position = {executor.submit(work, i): i for i in positions}
            for future in as_completed(future_to_position):
                position = future_to_position[future]
                try:
                    future.result()
                except Exception:
                    logger.exception("Scan worker failed at pivot position %d", position)
                    raise

        sink.sort(key=lambda c: c.position)
        return sink

    def _finalize(self, candidate: PatternCandidate) -> PatternRecord:
        candidate.finalized = True
        monitor = candidate.monitor
        breakout = monitor.breakout
        fixed_labels, relative_labels = slot_labels(self.config.returns)

        if candidate.returns is not None:
            returns_fixed = list(candidate.returns.returns_fixed)
            returns_relative = list(candidate.returns.returns_relative)
            pattern_length = candidate.returns.pattern_length
        else:
            returns_fixed = [math.nan] * len(fixed_labels)
            returns_relative = [math.nan] * len(relative_labels)
            pattern_length = None

        features = candidate.features
        if breakout is not None and breakout.crossing_time is not None:
            features = with_breakout_leg(features, candidate.times[5], candidate.prices[5],
                                         breakout.crossing_time, breakout.crossing_price,
                                         self.config.epsilon)

        shoulder = candidate.shoulder_position
        return PatternRecord(
            pattern_name=candidate.kind.value,
            valid=monitor.confirmed,
            state=monitor.state.value,
            start_index_pivot=candidate.position,
            start_index_original=candidate.start_index,
            right_shoulder_index_pivot=shoulder,
            right_shoulder_index_original=monitor.start - 1,
            breakout_index_original=breakout.index if breakout else None,
            times=list(candidate.times),
            prices=list(candidate.prices),
            breakout_time=breakout.time if breakout else None,
            breakout_price=breakout.price if breakout else None,
            prior_trend=candidate.prior_trend,
            following_trend=candidate.following_trend,
            returns_fixed=returns_fixed,
            returns_relative=returns_relative,
            pattern_length=pattern_length,
            features=features,
            config_hash=self.config_hash,
            fixed_labels=fixed_labels,
            relative_labels=relative_labels,
        )


def find_patterns(pivot_indices: Sequence[int], times: Sequence[float],
                  prices: Sequence[float], config: Optional[ScannerConfig] = None) -> ScanResult:
    """Convenience wrapper: scan one series with a fresh scanner."""
    return PatternScanner(config).scan(pivot_indices, times, prices)


def scan_frame(df: pd.DataFrame, pivot_indices: Union[str, Sequence[int]],
               time_col: str = 'time', price_col: str = 'price',
               config: Optional[ScannerConfig] = None,
               time_unit: str = 'D') -> ScanResult:
    """
    Scan a DataFrame holding the original series.

    Args:
        df: Original series, one row per sample, ordered by time
        pivot_indices: Row positions of the pivots, or the name of a boolean
            column flagging pivot rows
        time_col: Time column; datetimes are converted to elapsed `time_unit`
            units since the epoch so that return windows keep their meaning
        price_col: Price column
        config: Scanner configuration
        time_unit: pandas Timedelta unit used for datetime columns

    Returns:
        ScanResult
    """
    if isinstance(pivot_indices, str):
        pivot_indices = np.flatnonzero(df[pivot_indices].to_numpy(dtype=bool))

    times = df[time_col]
    if pd.api.types.is_datetime64_any_dtype(times):
        times = (times - pd.Timestamp(0, tz=times.dt.tz)) / pd.Timedelta(1, unit=time_unit)

    return find_patterns(pivot_indices, times, df[price_col], config)
