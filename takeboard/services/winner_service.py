"""
Winner selection

select_winner() is a pure read: it ranks a scope and looks up the profile
behind the top subject. Persisting the winner is the grading service's job.
"""

import logging
from dataclasses import asdict, dataclass

from takeboard.services.scope_resolver import get_scope_resolver
from takeboard.utils.leaderboard import aggregate_take_stats, build_leaderboard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WinnerResult:
    subject_key: str
    points: int
    takes: int
    profile_ref: int = None
    profile_id: str = None
    username: str = None

    @property
    def has_profile(self):
        return self.profile_ref is not None

    def to_dict(self):
        return asdict(self)


# Returned when a scope has no ranked subjects
NO_WINNER = None


def select_winner(scope, resolver=None):
    """
    Pick the top-ranked subject of a scope.

    Returns:
        WinnerResult, or NO_WINNER when the scope has no visible takes.
        profile_ref/profile_id/username are None when the winning mobile
        number has no profile.
    """
    resolver = resolver or get_scope_resolver()

    takes = resolver.resolve(scope)
    rows = build_leaderboard(aggregate_take_stats(takes), limit=1)
    if not rows:
        logger.info(f"No winner for {scope.cache_key()}: no visible takes")
        return NO_WINNER

    top = rows[0]
    profile = resolver.repository.find_profile_by_phone(top.subject_key)
    if profile is None:
        logger.warning(
            f"Top subject {top.subject_key} for {scope.cache_key()} has no profile"
        )
        return WinnerResult(subject_key=top.subject_key, points=top.points, takes=top.takes)

    return WinnerResult(
        subject_key=top.subject_key,
        points=top.points,
        takes=top.takes,
        profile_ref=profile.id,
        profile_id=profile.profile_id,
        username=profile.username,
    )
