"""
Geometry Kernel
---------------
Safe two-point line primitives used wherever a neckline value is needed.

The neckline of a candidate runs through pivots 2 and 4 and is evaluated
outside that span as well (pivots 0, 1, 5 and any later sample time), so
`interpolate` doubles as an extrapolator. A zero-width span never raises:
it collapses to the mean of the two prices and a zero slope.
"""

from dataclasses import dataclass

DEFAULT_EPSILON = 1e-10


def interpolate(x1: float, x2: float, y1: float, y2: float, x: float,
                epsilon: float = DEFAULT_EPSILON) -> float:
    """
    Evaluate the line through (x1, y1) and (x2, y2) at x.

    Args:
        x1, x2: Abscissae (times) of the two anchor points
        y1, y2: Ordinates (prices) of the two anchor points
        x: Position to evaluate, inside or outside [x1, x2]
        epsilon: Minimum span below which the anchors count as coincident

    Returns:
        The line value at x, or the mean of y1 and y2 for a degenerate span
    """
    if abs(x2 - x1) < epsilon:
        return (y1 + y2) / 2.0
    return y1 + (y2 - y1) / (x2 - x1) * (x - x1)


def slope(x1: float, x2: float, y1: float, y2: float,
          epsilon: float = DEFAULT_EPSILON) -> float:
    """Slope between two points; 0.0 when the span is degenerate."""
    if abs(x2 - x1) < epsilon:
        return 0.0
    return (y2 - y1) / (x2 - x1)


@dataclass(frozen=True)
class Neckline:
    """Line through the two inner pivots (2 and 4) of a candidate."""
    t2: float
    p2: float
    t4: float
    p4: float
    epsilon: float = DEFAULT_EPSILON

    def value_at(self, t: float) -> float:
        return interpolate(self.t2, self.t4, self.p2, self.p4, t, self.epsilon)

    @property
    def slope(self) -> float:
        return slope(self.t2, self.t4, self.p2, self.p4, self.epsilon)

    @property
    def span(self) -> float:
        return self.t4 - self.t2
