"""
Record repository

The only module the engine services use to read and write records. Every
multi-identifier lookup goes through chunked_fetch with expanding IN
parameters, and every SQLAlchemy failure leaves here as ViewMissing or
BackendUnavailable.
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from takeboard import db
from takeboard.errors import classify_db_error
from takeboard.models import Achievement, Profile, Take
from takeboard.utils.chunking import LOOKUP_CHUNK_SIZE, chunked, chunked_fetch

logger = logging.getLogger(__name__)


@contextmanager
def translate_db_errors():
    try:
        yield
    except SQLAlchemyError as e:
        raise classify_db_error(e) from e


class RecordRepository:
    """Read/write access to takes, profiles, achievements and winner refs"""

    def __init__(self, chunk_size=LOOKUP_CHUNK_SIZE, max_workers=1):
        self.chunk_size = chunk_size
        self.max_workers = max_workers

    # Takes

    def find_takes_by_identifiers(self, take_ids, include_overwritten=False):
        """Fetch take rows by primary key, in id order"""

        def fetch(chunk):
            query = Take.query.filter(Take.id.in_(chunk))
            if not include_overwritten:
                query = query.filter(Take.take_status != "overwritten")
            return query.order_by(Take.id).all()

        with translate_db_errors():
            takes = chunked_fetch(
                take_ids,
                fetch,
                chunk_size=self.chunk_size,
                max_workers=self.max_workers,
                record_key=lambda t: t.id,
            )
        return sorted(takes, key=lambda t: t.id)

    def find_takes_by_filter(self, prop_ids=None, mobile=None, profile_ref=None, latest_only=False):
        """
        Fetch non-overwritten takes matching any of the given prop ids,
        and/or belonging to a mobile number / profile.

        Args:
            prop_ids: text prop identifiers (chunked)
            mobile: E.164 mobile number
            profile_ref: internal profile id
            latest_only: require take_status == 'latest'
        """

        def base_query():
            query = Take.query.filter(Take.take_status != "overwritten")
            if latest_only:
                query = query.filter(Take.take_status == "latest")
            if mobile is not None and profile_ref is not None:
                query = query.filter(
                    db.or_(
                        Take.profile_ref == profile_ref,
                        db.and_(Take.profile_ref.is_(None), Take.take_mobile == mobile),
                    )
                )
            elif profile_ref is not None:
                query = query.filter(Take.profile_ref == profile_ref)
            elif mobile is not None:
                query = query.filter(Take.take_mobile == mobile)
            return query

        with translate_db_errors():
            if prop_ids is None:
                return base_query().order_by(Take.id).all()

            takes = chunked_fetch(
                prop_ids,
                lambda chunk: base_query().filter(Take.prop_id.in_(chunk)).all(),
                chunk_size=self.chunk_size,
                max_workers=self.max_workers,
                record_key=lambda t: t.id,
            )
        return sorted(takes, key=lambda t: t.id)

    # Profiles

    def find_profile_by_phone(self, phone):
        if not phone:
            return None
        with translate_db_errors():
            return Profile.query.filter_by(mobile_e164=phone).first()

    def find_profiles_by_phones(self, phones):
        """Map each known mobile number to its Profile"""
        with translate_db_errors():
            profiles = chunked_fetch(
                phones,
                lambda chunk: Profile.query.filter(Profile.mobile_e164.in_(chunk)).all(),
                chunk_size=self.chunk_size,
                max_workers=self.max_workers,
                record_key=lambda p: p.id,
            )
        return {p.mobile_e164: p for p in profiles if p.mobile_e164}

    def find_profile_by_record_ref(self, profile_ref):
        if profile_ref is None:
            return None
        with translate_db_errors():
            return db.session.get(Profile, profile_ref)

    # Achievements

    def find_achievement_keys(self, profile_ref):
        with translate_db_errors():
            rows = (
                db.session.query(Achievement.achievement_key)
                .filter(Achievement.profile_ref == profile_ref)
                .all()
            )
        return {str(row.achievement_key) for row in rows if row.achievement_key}

    def insert_achievements(self, rows, batch_size=10):
        """
        Insert achievement rows in batches, committing each batch.

        A batch that hits the (profile_ref, achievement_key) unique
        constraint is retried row by row; conflicting rows are skipped.

        Returns:
            list of achievement keys actually inserted
        """
        created = []
        for batch in chunked(rows, batch_size):
            try:
                db.session.add_all([Achievement(**row) for row in batch])
                db.session.commit()
                created.extend(row["achievement_key"] for row in batch)
            except IntegrityError:
                db.session.rollback()
                logger.info(
                    f"Achievement batch conflicted, retrying {len(batch)} rows individually"
                )
                created.extend(self._insert_individually(batch))
            except SQLAlchemyError as e:
                db.session.rollback()
                raise classify_db_error(e) from e
        return created

    def _insert_individually(self, batch):
        created = []
        for row in batch:
            try:
                db.session.add(Achievement(**row))
                db.session.commit()
                created.append(row["achievement_key"])
            except IntegrityError:
                db.session.rollback()
                logger.info(
                    f"Achievement {row['achievement_key']} already exists for "
                    f"profile {row['profile_ref']}, skipping"
                )
            except SQLAlchemyError as e:
                db.session.rollback()
                raise classify_db_error(e) from e
        return created

    # Winner references

    def update_winner_ref(self, target, profile_ref):
        """
        Mark a pack or contest graded and set its winner (write-once).

        Returns:
            False if a winner was already recorded, True otherwise
        """
        if target.winner_profile_ref is not None:
            logger.info(f"{target!r} already has a winner, not overwriting")
            return False

        target.winner_profile_ref = profile_ref
        if hasattr(target, "contest_status"):
            target.contest_status = "graded"
        elif hasattr(target, "pack_status"):
            target.pack_status = "graded"

        with translate_db_errors():
            db.session.flush()
        return True

    # Aggregate view

    def run_aggregate_view(self, statement):
        """
        Execute a statement against the aggregate view.

        Raises ViewMissing when the view is absent; ScopeResolver catches it
        and falls back to the base-table join strategy.
        """
        with translate_db_errors():
            return db.session.execute(statement).all()

    def run_query(self, statement):
        with translate_db_errors():
            return db.session.execute(statement).all()
