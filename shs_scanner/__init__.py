"""
SHS / iSHS chart pattern scanner over a precomputed pivot stream.
"""

from .breakout_engine import Breakout, BreakoutMonitor, LifecycleState
from .config_loader import ConfigLoader, load_config
from .geometry import Neckline, interpolate, slope
from .pattern_scanner import (
    PatternCandidate,
    PatternRecord,
    PatternScanner,
    ScannerConfig,
    ScanResult,
    find_patterns,
    scan_frame,
)
from .return_calculator import ReturnConfig, ReturnTracker, StatisticsAggregator
from .series_normalizer import InputContractError, OriginalSeries, PivotSeries, SeriesNormalizer
from .shape_matcher import PatternKind, ShapeFeatures, match_shape, shape_features
from .trend_tracker import TrendSnapshot, TrendTracker, local_trend

__version__ = "0.1.0"
