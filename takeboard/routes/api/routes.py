from functools import wraps

from flask import abort, jsonify, request

from takeboard.models import Profile
from takeboard.routes.api import bp
from takeboard.services.achievement_service import compute_profile_total_points
from takeboard.services.leaderboard_service import (
    get_contest_leaderboard,
    get_leaderboard,
    get_pack_leaderboard,
)
from takeboard.services.repository import translate_db_errors
from takeboard.services.scope_resolver import get_scope_resolver, parse_datetime


def add_security_headers(f):
    """Add security headers to API responses"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = f(*args, **kwargs)
        if hasattr(response, "headers"):
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
        return response

    return decorated_function


def _refresh_requested():
    return request.args.get("refresh", "").lower() in ("1", "true", "yes")


def _leaderboard_response(result):
    return jsonify({"success": True, **result})


@bp.route("/leaderboard")
@add_security_headers
def leaderboard():
    """Leaderboard filtered by team, packs and/or event time window"""
    pack_ids = [p.strip() for p in request.args.get("packIds", "").split(",") if p.strip()]
    try:
        start = parse_datetime(request.args.get("startDate"))
        end = parse_datetime(request.args.get("endDate"))
    except ValueError:
        abort(400)

    result = get_leaderboard(
        team_slug=request.args.get("teamSlug") or None,
        pack_ids=pack_ids,
        start=start,
        end=end,
        limit=request.args.get("limit", type=int),
        bypass_cache=_refresh_requested(),
    )
    return _leaderboard_response(result)


@bp.route("/packs/<pack>/leaderboard")
@add_security_headers
def pack_leaderboard(pack):
    """Leaderboard for one pack (URL, pack id or internal id)"""
    result = get_pack_leaderboard(
        pack,
        limit=request.args.get("limit", type=int),
        bypass_cache=_refresh_requested(),
    )
    return _leaderboard_response(result)


@bp.route("/contests/<contest>/leaderboard")
@add_security_headers
def contest_leaderboard(contest):
    """Leaderboard across every pack of a contest"""
    result = get_contest_leaderboard(
        contest,
        limit=request.args.get("limit", type=int),
        bypass_cache=_refresh_requested(),
    )
    return _leaderboard_response(result)


@bp.route("/profiles/<profile_id>/points")
@add_security_headers
def profile_points(profile_id):
    """Total visible points and achievement keys for a profile"""
    with translate_db_errors():
        profile = Profile.get_by_profile_id(profile_id)
    if profile is None:
        abort(404)

    repository = get_scope_resolver().repository
    total = compute_profile_total_points(profile, repository)
    keys = sorted(repository.find_achievement_keys(profile.id))

    return jsonify(
        {
            "success": True,
            "profile": profile.to_dict(),
            "points": total,
            "achievement_keys": keys,
        }
    )
