from __future__ import annotations


def percent(part: int, whole: int) -> int:
    """round(part / whole * 100) with halves rounded up; 0 when whole is 0.

    Integer arithmetic keeps 5/11 at 45 and 1/8 at 13 with no float drift
    and no banker's rounding.
    """
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)
