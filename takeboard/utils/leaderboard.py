"""
Leaderboard aggregation for Takeboard

aggregate_take_stats() tallies visible takes per subject (mobile number);
build_leaderboard() ranks those tallies. Both are pure, so the same
functions serve every scope and every data path.
"""

from dataclasses import asdict, dataclass

from takeboard.utils.normalize import normalize_take
from takeboard.utils.points import is_visible_take, sum_take_points

EXCLUDED_STATUSES = ("archived", "draft")


@dataclass
class TakeStats:
    subject_key: str
    takes: int = 0
    points: int = 0
    won: int = 0
    lost: int = 0
    pushed: int = 0
    pending: int = 0


@dataclass
class LeaderboardRow:
    subject_key: str
    profile_id: str = None
    takes: int = 0
    points: int = 0
    won: int = 0
    lost: int = 0
    pushed: int = 0
    pending: int = 0

    def to_dict(self):
        return asdict(self)


def _is_excluded(take):
    if (take.prop_status or "").lower() in EXCLUDED_STATUSES:
        return True
    return (take.pack_status or "").lower() in EXCLUDED_STATUSES


def aggregate_take_stats(records):
    """
    Group takes by subject and tally them.

    Takes on archived or draft props/packs are dropped first (a prop pulled
    after takes were placed must not pollute rankings), then invisible
    takes. Records sharing an id are counted once. Subjects left with no
    takes are absent from the result.

    Returns:
        dict of subject_key -> TakeStats, in first-seen order
    """
    seen_ids = set()
    grouped = {}

    for take in map(normalize_take, records):
        if take.record_id is not None:
            if take.record_id in seen_ids:
                continue
            seen_ids.add(take.record_id)
        if _is_excluded(take) or not is_visible_take(take):
            continue
        grouped.setdefault(take.subject_key, []).append(take)

    stats = {}
    for subject_key, takes in grouped.items():
        s = TakeStats(subject_key=subject_key, takes=len(takes))
        s.points = sum_take_points(takes)
        for take in takes:
            if take.result == "won":
                s.won += 1
            elif take.result == "lost":
                s.lost += 1
            elif take.result == "pending":
                s.pending += 1
            elif take.result == "pushed":
                s.pushed += 1
        stats[subject_key] = s
    return stats


def build_leaderboard(stats, profile_map=None, limit=None):
    """
    Rank aggregated stats.

    Sorted by points desc, then takes desc; Python's stable sort keeps
    insertion order as the final tie-break.

    Args:
        stats: dict of subject_key -> TakeStats (from aggregate_take_stats)
        profile_map: optional subject_key -> profile_id mapping
        limit: optional maximum number of rows
    """
    profile_map = profile_map or {}
    rows = [
        LeaderboardRow(
            subject_key=s.subject_key,
            profile_id=profile_map.get(s.subject_key),
            takes=s.takes,
            points=s.points,
            won=s.won,
            lost=s.lost,
            pushed=s.pushed,
            pending=s.pending,
        )
        for s in stats.values()
    ]
    rows.sort(key=lambda r: (r.points, r.takes), reverse=True)
    if limit is not None:
        rows = rows[: max(int(limit), 0)]
    return rows
