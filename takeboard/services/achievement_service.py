"""
Achievement Threshold Engine

Awards one "Points Milestone" achievement per POINTS_MILESTONE_STEP points
a profile has accumulated (points_1000, points_2000, ...). Awards are
idempotent: existing keys are skipped up front and the
(profile_ref, achievement_key) unique constraint turns a concurrent
duplicate into a no-op.
"""

import logging
import threading
import weakref
from dataclasses import dataclass, field
from time import monotonic

from flask import current_app, has_app_context

from takeboard import db
from takeboard.services.repository import RecordRepository
from takeboard.utils.chunking import unique_identifiers
from takeboard.utils.performance import PerformanceMonitor
from takeboard.utils.points import sum_take_points

logger = logging.getLogger(__name__)

MILESTONE_STEP = 1000
MILESTONE_TITLE = "Points Milestone"

# One lock per profile; awards for the same profile never overlap in-process.
# Entries disappear once no thread holds or waits on the lock.
_profile_locks = weakref.WeakValueDictionary()
_profile_locks_guard = threading.Lock()


def _profile_lock(profile_ref):
    with _profile_locks_guard:
        lock = _profile_locks.get(profile_ref)
        if lock is None:
            lock = _profile_locks[profile_ref] = threading.Lock()
        return lock


def _config(name, default):
    if has_app_context():
        return current_app.config.get(name, default)
    return default


@dataclass(frozen=True)
class Threshold:
    threshold: int
    key: str


@dataclass
class AwardBatchResult:
    results: list = field(default_factory=list)
    truncated: bool = False
    last_profile_ref: int = None

    @property
    def errors(self):
        return [r for r in self.results if "error" in r]

    def to_dict(self):
        return {
            "results": list(self.results),
            "truncated": self.truncated,
            "last_profile_ref": self.last_profile_ref,
        }


def milestone_key(threshold):
    return f"points_{threshold}"


def missing_thresholds(points, existing_keys, step=None):
    """
    Milestones reached by ``points`` that are not yet in ``existing_keys``.

    Returns:
        list of Threshold, ascending
    """
    step = step or _config("POINTS_MILESTONE_STEP", MILESTONE_STEP)
    existing = set(existing_keys or ())
    reached = max(int(points or 0), 0) // step
    missing = []
    for k in range(1, reached + 1):
        threshold = k * step
        key = milestone_key(threshold)
        if key not in existing:
            missing.append(Threshold(threshold=threshold, key=key))
    return missing


def _repository(repository):
    if repository is not None:
        return repository
    return RecordRepository(
        chunk_size=_config("LOOKUP_CHUNK_SIZE", 50),
        max_workers=_config("LOOKUP_MAX_WORKERS", 1),
    )


def award_thresholds(profile, missing, repository=None):
    """
    Insert an achievement row per missing threshold.

    Returns:
        list of achievement keys actually created; keys that already
        existed (unique constraint conflict) are not reported
    """
    if not missing:
        return []
    repository = _repository(repository)

    rows = [
        {
            "profile_ref": profile.id,
            "profile_id": profile.profile_id,
            "achievement_key": t.key,
            "title": MILESTONE_TITLE,
            "description": f"Reached {t.threshold} points",
            "value": 1,
        }
        for t in missing
    ]
    created = repository.insert_achievements(
        rows, batch_size=_config("ACHIEVEMENT_BATCH_SIZE", 10)
    )
    if created:
        logger.info(f"Awarded {created} to profile {profile.profile_id}")
    return created


def compute_profile_total_points(profile, repository=None):
    """Visible points across takes linked to the profile or placed from its mobile"""
    repository = _repository(repository)
    takes = repository.find_takes_by_filter(
        mobile=profile.mobile_e164 or None, profile_ref=profile.id
    )
    return sum_take_points(takes)


def check_and_award(profile, repository=None):
    """
    Award every milestone the profile has reached but not yet received.

    Returns:
        list of newly created achievement keys
    """
    repository = _repository(repository)
    with _profile_lock(profile.id):
        total = compute_profile_total_points(profile, repository)
        existing = repository.find_achievement_keys(profile.id)
        missing = missing_thresholds(total, existing)
        logger.debug(
            f"Profile {profile.profile_id}: {total} points, "
            f"{len(existing)} existing, {len(missing)} missing"
        )
        return award_thresholds(profile, missing, repository)


def affected_profiles(prop_ids, repository=None):
    """
    Profiles behind the latest takes on the given props, in id order.

    Takes linked to a profile use that link; unlinked takes are matched
    by mobile number.
    """
    repository = _repository(repository)
    takes = repository.find_takes_by_filter(prop_ids=prop_ids, latest_only=True)

    profile_refs = []
    phones = []
    for take in takes:
        if take.profile_ref is not None:
            profile_refs.append(take.profile_ref)
        elif take.take_mobile:
            phones.append(take.take_mobile)

    if phones:
        phone_map = repository.find_profiles_by_phones(unique_identifiers(phones))
        profile_refs.extend(p.id for p in phone_map.values())

    profiles = []
    for profile_ref in sorted(unique_identifiers(profile_refs)):
        profile = repository.find_profile_by_record_ref(profile_ref)
        if profile is not None:
            profiles.append(profile)
    return profiles


def rotate_profiles(profiles, resume_after=None):
    """Start after profile id resume_after and wrap around to the rest"""
    if resume_after is None:
        return list(profiles)
    head = [p for p in profiles if p.id > resume_after]
    tail = [p for p in profiles if p.id <= resume_after]
    return head + tail


def award_for_updated_props(prop_ids, timeout=None, repository=None, resume_after=None):
    """
    Check milestones for every profile affected by updated props.

    One profile failing does not stop the others; its error is recorded
    as {"profile_ref", "error"}. Profiles that gained achievements are
    recorded as {"profile_ref", "achievement_keys"}.

    Args:
        prop_ids: text ids of props whose takes changed
        timeout: seconds after which no further profiles are started;
            the result is then flagged truncated
        resume_after: profile id a previous truncated run stopped at;
            profiles after it are checked first

    Returns:
        AwardBatchResult; last_profile_ref is the last profile checked
    """
    batch = AwardBatchResult()
    prop_ids = unique_identifiers(prop_ids or ())
    if not prop_ids:
        return batch

    repository = _repository(repository)
    deadline = monotonic() + timeout if timeout is not None else None

    with PerformanceMonitor(f"award_for_updated_props:{len(prop_ids)} props"):
        profiles = rotate_profiles(affected_profiles(prop_ids, repository), resume_after)
        for index, profile in enumerate(profiles):
            if deadline is not None and monotonic() >= deadline:
                batch.truncated = True
                logger.warning(
                    f"Award fan-out stopped after {index} of {len(profiles)} profiles (timeout {timeout}s)"
                )
                break
            batch.last_profile_ref = profile.id
            try:
                created = check_and_award(profile, repository)
            except Exception as e:
                db.session.rollback()
                logger.error(f"Achievement check failed for profile {profile.id}: {e}")
                batch.results.append({"profile_ref": profile.id, "error": str(e)})
                continue
            if created:
                batch.results.append({"profile_ref": profile.id, "achievement_keys": created})

    logger.info(
        f"Award fan-out: {len(profiles)} profiles, {len(batch.results)} results, "
        f"truncated={batch.truncated}"
    )
    return batch
