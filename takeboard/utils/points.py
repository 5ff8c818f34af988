"""
Points engine for Takeboard

This module decides which takes count and sums their points.
For per-subject tallies and rankings, see takeboard/utils/leaderboard.py
"""

from takeboard.utils.normalize import normalize_take


def is_visible_take(take):
    """
    Whether a take counts toward totals.

    Returns:
        False for overwritten or hidden takes, True otherwise
    """
    take = normalize_take(take)
    if take.status == "overwritten":
        return False
    if take.hidden:
        return False
    return True


def sum_take_points(takes):
    """
    Sum the points of visible takes.

    Malformed or missing point values count as 0 (see coerce_points).

    Args:
        takes: iterable of raw or normalized take records
    """
    return sum(take.points for take in map(normalize_take, takes) if is_visible_take(take))
