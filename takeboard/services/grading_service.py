"""
Grading service

Persists winners for contests and packs. Winner references are write-once:
a graded contest is never re-graded, and a pack that already has a winner
is skipped.
"""

import logging
from datetime import datetime, timezone

from takeboard import db
from takeboard.errors import TakeboardError
from takeboard.models import Contest, Pack
from takeboard.services.repository import translate_db_errors
from takeboard.services.scope_resolver import ContestScope, PackScope, get_scope_resolver
from takeboard.services.winner_service import NO_WINNER, select_winner
from takeboard.utils.cache_utils import get_leaderboard_cache
from takeboard.utils.performance import timer

logger = logging.getLogger(__name__)


def _commit():
    with translate_db_errors():
        db.session.commit()
    get_leaderboard_cache().invalidate()


@timer
def grade_contest(contest, resolver=None):
    """
    Grade a contest: pick the top subject across its packs and link the
    winner's profile.

    A contest with no packs, no props or no visible takes is still marked
    graded, with no winner. So is one whose top subject has no profile.

    Args:
        contest: Contest instance or contest identifier

    Returns:
        dict with "graded", "already_graded", "winner" (WinnerResult dict
        or None) and "contest" (Contest dict); None if the contest does
        not exist
    """
    resolver = resolver or get_scope_resolver()

    if not isinstance(contest, Contest):
        with translate_db_errors():
            contest = Contest.find(contest)
        if contest is None:
            return None

    if contest.is_graded:
        logger.info(f"Contest {contest.contest_id} already graded, skipping")
        return {
            "graded": True,
            "already_graded": True,
            "winner": None,
            "contest": contest.to_dict(),
        }

    logger.info(f"Grading contest {contest.contest_id} ({len(contest.packs)} packs)")
    winner = select_winner(ContestScope(contest.contest_id), resolver=resolver)

    profile_ref = winner.profile_ref if winner is not NO_WINNER else None
    resolver.repository.update_winner_ref(contest, profile_ref)
    contest.graded_at = datetime.now(timezone.utc)
    _commit()

    if winner is NO_WINNER:
        logger.info(f"Contest {contest.contest_id} graded with no winner")
    else:
        logger.info(
            f"Contest {contest.contest_id} graded: top={winner.subject_key} "
            f"points={winner.points} linked={winner.has_profile}"
        )

    return {
        "graded": True,
        "already_graded": False,
        "winner": winner.to_dict() if winner is not NO_WINNER else None,
        "contest": contest.to_dict(),
    }


def list_packs_without_winners(limit=500):
    """Graded packs that have no winner recorded yet"""
    with translate_db_errors():
        return (
            Pack.query.filter(
                db.func.lower(Pack.pack_status) == "graded",
                Pack.winner_profile_ref.is_(None),
            )
            .order_by(Pack.id)
            .limit(limit)
            .all()
        )


@timer
def set_pack_winners(packs=None, resolver=None):
    """
    Assign winners to graded packs.

    Packs that already have a winner, or are not graded, are skipped
    silently. A pack whose top subject has no profile is reported in
    ``errors`` and left without a winner.

    Args:
        packs: pack instances or identifiers; defaults to every graded
            pack without a winner

    Returns:
        dict with "updated_count" and "errors" (list of messages)
    """
    resolver = resolver or get_scope_resolver()
    if packs is None:
        packs = list_packs_without_winners()

    updated_count = 0
    errors = []

    for item in packs:
        label = item.pack_id if isinstance(item, Pack) else str(item)
        try:
            with translate_db_errors():
                pack = item if isinstance(item, Pack) else Pack.find(item)
            if pack is None:
                errors.append(f"Pack not found for {label}")
                continue
            if pack.winner_profile_ref is not None or not pack.is_graded:
                continue

            winner = select_winner(PackScope(pack.pack_id), resolver=resolver)
            if winner is NO_WINNER:
                continue
            if not winner.has_profile:
                errors.append(
                    f"No profile found for winner phone {winner.subject_key} (pack {pack.pack_id})"
                )
                continue

            if resolver.repository.update_winner_ref(pack, winner.profile_ref):
                with translate_db_errors():
                    db.session.commit()
                updated_count += 1
                logger.info(f"Pack {pack.pack_id} winner set to profile {winner.profile_id}")
        except TakeboardError as e:
            db.session.rollback()
            logger.error(f"Error setting winner for pack {label}: {e}")
            errors.append(f"Error on {label}: {e}")

    if updated_count:
        get_leaderboard_cache().invalidate()

    logger.info(f"Pack winners: {updated_count} updated, {len(errors)} errors")
    return {"updated_count": updated_count, "errors": errors}
