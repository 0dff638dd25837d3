"""
Interpolation - Linear interpolation with an out-of-range policy
"""

import logging
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np

from ..exceptions import OutOfRangeError, UsageError

logger = logging.getLogger(__name__)


class RangePolicy(Enum):
    """What to do with an abscissa outside the tabulated range"""
    ABORT = 'abort'
    WARN = 'warn'
    SKIP = 'skip'
    SATURATE = 'saturate'
    WRAP = 'wrap'
    EXTRAPOLATE = 'extrapolate'
    VALUE = 'value'


def interpolate(x: Sequence[float], y: Sequence[float], at: float,
                policy: RangePolicy = RangePolicy.ABORT,
                value: Optional[float] = None) -> Tuple[Optional[float], bool]:
    """
    Linearly interpolate y(x) at one point

    Args:
        x: Monotonically increasing abscissas
        y: Ordinates
        at: Point to evaluate
        policy: Handling of points outside [x[0], x[-1]]
        value: Substitute returned with RangePolicy.VALUE

    Returns:
        (result, in_range); result is None when the point is skipped

    Raises:
        OutOfRangeError: Point outside the table with RangePolicy.ABORT
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if len(x) == 0 or len(x) != len(y):
        raise UsageError("Interpolation table is empty or ragged")
    low, high = x[0], x[-1]
    if low <= at <= high:
        return float(np.interp(at, x, y)), True

    if policy == RangePolicy.ABORT:
        raise OutOfRangeError(f"Value {at} outside [{low}, {high}]")
    if policy == RangePolicy.SKIP:
        return None, False
    if policy == RangePolicy.VALUE:
        if value is None:
            raise UsageError("RangePolicy.VALUE needs a substitute value")
        return float(value), False
    if policy == RangePolicy.WRAP:
        span = high - low
        wrapped = low + (at - low) % span if span > 0 else low
        return float(np.interp(wrapped, x, y)), False
    if policy == RangePolicy.EXTRAPOLATE and len(x) > 1:
        i = 0 if at < low else len(x) - 2
        slope = (y[i + 1] - y[i]) / (x[i + 1] - x[i])
        return float(y[i] + slope * (at - x[i])), False
    if policy == RangePolicy.WARN:
        logger.warning(f"Value {at} outside [{low}, {high}]; using end point")
    return float(y[0] if at < low else y[-1]), False
