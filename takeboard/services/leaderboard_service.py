"""
Leaderboard reads

Resolves a scope, aggregates and ranks its takes, decorates each row with
the subject's public profile id and caches the result per scope. Every
read returns the rows together with a display title for the scope.
"""

import logging

from flask import current_app

from takeboard.models import Contest, Pack, Team
from takeboard.services.repository import translate_db_errors
from takeboard.services.scope_resolver import (
    ContestScope,
    FilterScope,
    PackScope,
    get_scope_resolver,
)
from takeboard.utils.cache_utils import get_leaderboard_cache, make_scope_key
from takeboard.utils.leaderboard import aggregate_take_stats, build_leaderboard
from takeboard.utils.performance import timer

logger = logging.getLogger(__name__)


def clamp_limit(limit=None):
    """Apply the configured default and maximum to a requested row limit"""
    default = current_app.config.get("LEADERBOARD_DEFAULT_LIMIT", 100)
    maximum = current_app.config.get("LEADERBOARD_MAX_LIMIT", 500)
    try:
        limit = int(limit) if limit is not None else default
    except (TypeError, ValueError):
        limit = default
    if limit < 1:
        limit = default
    return min(limit, maximum)


def scope_title(scope):
    """Human readable title for a scope"""
    with translate_db_errors():
        if isinstance(scope, PackScope):
            pack = Pack.find(scope.pack)
            return pack.title if pack and pack.title else f"Pack {scope.pack}"

        if isinstance(scope, ContestScope):
            contest = Contest.find(scope.contest)
            return contest.title if contest and contest.title else f"Contest {scope.contest}"

        parts = []
        if scope.team_slug:
            team = Team.resolve_slug(scope.team_slug)
            parts.append(team.name if team else scope.team_slug)
        if scope.pack_ids:
            parts.append(f"{len(scope.pack_ids)} pack(s)")
        if scope.start or scope.end:
            start = scope.start.date().isoformat() if scope.start else "..."
            end = scope.end.date().isoformat() if scope.end else "..."
            parts.append(f"{start} to {end}")
        return " / ".join(parts) if parts else "Global Leaderboard"


def compute_leaderboard(scope, limit=None, resolver=None, repository=None):
    """Uncached leaderboard rows for a scope"""
    resolver = resolver or get_scope_resolver()
    repository = repository or resolver.repository

    takes = resolver.resolve(scope)
    stats = aggregate_take_stats(takes)
    if not stats:
        return []

    profiles = repository.find_profiles_by_phones(list(stats.keys()))
    profile_map = {phone: p.profile_id for phone, p in profiles.items()}
    return build_leaderboard(stats, profile_map=profile_map, limit=limit)


@timer
def get_scope_leaderboard(scope, limit=None, bypass_cache=False):
    """
    Leaderboard for a scope.

    Args:
        scope: PackScope, FilterScope or ContestScope
        limit: max rows (defaults to LEADERBOARD_DEFAULT_LIMIT, capped at
            LEADERBOARD_MAX_LIMIT)
        bypass_cache: recompute even if a fresh cached copy exists

    Returns:
        dict with "title" and "leaderboard" (list of row dicts)
    """
    limit = clamp_limit(limit)
    key = make_scope_key(scope, limit)

    def compute():
        rows = compute_leaderboard(scope, limit=limit)
        return {
            "title": scope_title(scope),
            "leaderboard": [row.to_dict() for row in rows],
        }

    return get_leaderboard_cache().get_or_compute(key, compute, bypass=bypass_cache)


def get_pack_leaderboard(pack, limit=None, bypass_cache=False):
    return get_scope_leaderboard(PackScope(str(pack)), limit, bypass_cache)


def get_contest_leaderboard(contest, limit=None, bypass_cache=False):
    return get_scope_leaderboard(ContestScope(str(contest)), limit, bypass_cache)


def get_leaderboard(
    team_slug=None, pack_ids=None, start=None, end=None, limit=None, bypass_cache=False
):
    scope = FilterScope(team_slug=team_slug, pack_ids=tuple(pack_ids or ()), start=start, end=end)
    return get_scope_leaderboard(scope, limit, bypass_cache)
