"""
Attendance percentage, always derived locally.

A percentage column in the sheet, if any, is never read.
"""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

Number = Union[int, float]


def _finite_or_none(value: Optional[Number]) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def derive_attendance_percentage(
    present: Optional[Number],
    leave: Optional[Number],
) -> float:
    """
    present / (present + leave) * 100, rounded half-up to 2 decimals.

    Returns 0.0 when either input is missing or non-finite, or when the
    total is not positive. The result is clamped to [0, 100].

    >>> derive_attendance_percentage(18, 2)
    90.0
    >>> derive_attendance_percentage(0, 0)
    0.0
    """
    present_f = _finite_or_none(present)
    leave_f = _finite_or_none(leave)
    if present_f is None or leave_f is None:
        return 0.0

    total = present_f + leave_f
    if total <= 0:
        return 0.0

    percentage = min(max(present_f / total * 100, 0.0), 100.0)
    return float(Decimal(repr(percentage)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
