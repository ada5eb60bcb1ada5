"""
Shape Matcher
-------------
Decides whether six consecutive pivots form a Shoulder-Head-Shoulder (SHS)
or an inverse Shoulder-Head-Shoulder (iSHS) candidate.

Pivot roles (SHS / iSHS):
    0: starting trough / starting peak
    1: left shoulder
    2: first neckline anchor
    3: head
    4: second neckline anchor
    5: right shoulder

Both kinds share every step and differ only in the direction of each
inequality, so the iSHS test is the SHS test multiplied by -1.
"""

from dataclasses import dataclass, asdict, replace
from enum import Enum
from typing import Optional, Tuple

from .geometry import DEFAULT_EPSILON, Neckline, slope
from .series_normalizer import PivotSeries

PATTERN_SIZE = 6


class PatternKind(Enum):
    SHS = "SHS"      # bearish reversal
    ISHS = "iSHS"    # bullish reversal

    @property
    def sign(self) -> int:
        return 1 if self is PatternKind.SHS else -1

    @property
    def breakout_direction(self) -> str:
        return 'down' if self is PatternKind.SHS else 'up'


def neckline_for(pivots: PivotSeries, position: int,
                 epsilon: float = DEFAULT_EPSILON) -> Neckline:
    """Neckline through pivots position+2 and position+4."""
    return Neckline(
        t2=float(pivots.times[position + 2]), p2=float(pivots.prices[position + 2]),
        t4=float(pivots.times[position + 4]), p4=float(pivots.prices[position + 4]),
        epsilon=epsilon,
    )


def _satisfies(kind: PatternKind, p: Tuple[float, ...],
               nl0: float, nl1: float, nl5: float) -> bool:
    s = kind.sign
    return (
        s * (p[1] - p[0]) > 0 and    # start below (above) left shoulder
        s * (p[2] - p[0]) > 0 and    # start below (above) first anchor
        s * (p[3] - p[1]) > 0 and    # head beyond left shoulder
        s * (p[3] - p[5]) > 0 and    # head beyond right shoulder
        s * (p[5] - nl5) > 0 and     # right shoulder on the far side of the neckline
        s * (p[1] - nl1) > 0 and     # left shoulder on the far side of the neckline
        s * (nl0 - p[0]) > 0         # start on the near side of the neckline
    )


def match_shape(pivots: PivotSeries, position: int,
                epsilon: float = DEFAULT_EPSILON) -> Optional[PatternKind]:
    """
    Match the six pivots starting at `position`.

    Args:
        pivots: Pivot view of the original series
        position: Pivot position of point 0
        epsilon: Degenerate-span threshold for the neckline

    Returns:
        PatternKind.SHS, PatternKind.ISHS, or None
    """
    if position < 0 or position + PATTERN_SIZE > len(pivots):
        return None

    p = tuple(float(x) for x in pivots.prices[position:position + PATTERN_SIZE])
    t = pivots.times[position:position + PATTERN_SIZE]
    neckline = neckline_for(pivots, position, epsilon)
    nl0 = neckline.value_at(float(t[0]))
    nl1 = neckline.value_at(float(t[1]))
    nl5 = neckline.value_at(float(t[5]))

    for kind in (PatternKind.SHS, PatternKind.ISHS):
        if _satisfies(kind, p, nl0, nl1, nl5):
            return kind
    return None


@dataclass(frozen=True)
class ShapeFeatures:
    """Symmetry features of a candidate: leg slopes and durations."""
    leg_slopes: Tuple[float, ...]
    leg_durations: Tuple[float, ...]
    neckline_slope: float
    neckline_span: float
    post_shoulder_slope: Optional[float] = None
    post_shoulder_duration: Optional[float] = None
    breakout_leg_slope: Optional[float] = None
    breakout_leg_duration: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


def with_breakout_leg(features: ShapeFeatures, shoulder_time: float, shoulder_price: float,
                      crossing_time: float, crossing_price: float,
                      epsilon: float = DEFAULT_EPSILON) -> ShapeFeatures:
    """
    Add the leg from the right shoulder to the neckline-crossing sample.

    The duration is measured from the pivot after the right shoulder and is
    negative when the crossing precedes that pivot. It is None when no such
    pivot exists.
    """
    duration = None
    if features.post_shoulder_duration is not None:
        duration = crossing_time - (shoulder_time + features.post_shoulder_duration)
    return replace(
        features,
        breakout_leg_slope=slope(shoulder_time, crossing_time, shoulder_price, crossing_price, epsilon),
        breakout_leg_duration=duration,
    )


def shape_features(pivots: PivotSeries, position: int,
                   epsilon: float = DEFAULT_EPSILON) -> ShapeFeatures:
    """Compute leg slopes/durations for the candidate at `position`."""
    t = [float(x) for x in pivots.times[position:position + PATTERN_SIZE]]
    p = [float(x) for x in pivots.prices[position:position + PATTERN_SIZE]]

    leg_slopes = tuple(slope(t[k], t[k + 1], p[k], p[k + 1], epsilon) for k in range(5))
    leg_durations = tuple(t[k + 1] - t[k] for k in range(5))
    neckline = neckline_for(pivots, position, epsilon)

    post_slope = None
    post_duration = None
    nxt = position + PATTERN_SIZE
    if nxt < len(pivots):
        t6, p6 = float(pivots.times[nxt]), float(pivots.prices[nxt])
        post_slope = slope(t[5], t6, p[5], p6, epsilon)
        post_duration = t6 - t[5]

    return ShapeFeatures(
        leg_slopes=leg_slopes,
        leg_durations=leg_durations,
        neckline_slope=neckline.slope,
        neckline_span=neckline.span,
        post_shoulder_slope=post_slope,
        post_shoulder_duration=post_duration,
    )
