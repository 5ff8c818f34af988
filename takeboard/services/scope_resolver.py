"""
Scope resolution

A scope (pack, pack list / team / time window, contest) is turned into the
concrete list of takes to aggregate. Lookups of packs, teams and contests
are shared; fetching the take rows is delegated to one of two strategies
with an identical column contract:

- ViewStrategy reads the precomputed v_take_facts view
- JoinStrategy rebuilds the same rows from base tables

ScopeResolver tries the view first and, if the view turns out to be
missing, swaps to the join strategy for the rest of its lifetime.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from flask import current_app
from sqlalchemy import and_, exists, or_, select

from takeboard import db
from takeboard.errors import BackendUnavailable, ViewMissing
from takeboard.models import (
    Contest,
    Event,
    Pack,
    Prop,
    Take,
    Team,
    packs_events,
    props_teams,
    take_facts,
)
from takeboard.services.repository import RecordRepository, translate_db_errors
from takeboard.utils.chunking import LOOKUP_CHUNK_SIZE, chunked_fetch
from takeboard.utils.normalize import normalize_takes
from takeboard.utils.performance import PerformanceMonitor

logger = logging.getLogger(__name__)


def parse_datetime(value):
    """Parse an ISO string/date/datetime into a naive UTC datetime"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


# Scope descriptors


@dataclass(frozen=True)
class PackScope:
    """Takes on a single pack, looked up by URL, text pack_id or internal id"""

    pack: str

    def cache_key(self):
        return f"pack_{self.pack}"


@dataclass(frozen=True)
class FilterScope:
    """
    Takes filtered by any combination of team, pack list and time window.
    start is inclusive, end is exclusive; both compare against the linked
    event time of the take's pack.
    """

    team_slug: str = None
    pack_ids: tuple = ()
    start: datetime = None
    end: datetime = None

    def __post_init__(self):
        object.__setattr__(self, "pack_ids", tuple(self.pack_ids or ()))
        object.__setattr__(self, "start", parse_datetime(self.start))
        object.__setattr__(self, "end", parse_datetime(self.end))

    def cache_key(self):
        packs = ",".join(sorted(str(p) for p in self.pack_ids))
        start = self.start.isoformat() if self.start else ""
        end = self.end.isoformat() if self.end else ""
        return f"filter_team_{(self.team_slug or '').lower()}_packs_{packs}_from_{start}_to_{end}"


@dataclass(frozen=True)
class ContestScope:
    """Takes on every prop of every pack linked to a contest"""

    contest: str

    def cache_key(self):
        return f"contest_{self.contest}"


# Fetch strategies


class ViewStrategy:
    name = "view"

    def __init__(self, repository, chunk_size=LOOKUP_CHUNK_SIZE, max_workers=1):
        self.repository = repository
        self.chunk_size = chunk_size
        self.max_workers = max_workers

    def _select(self):
        tf = take_facts.c
        return (
            select(
                tf.take_id,
                tf.take_mobile,
                tf.take_result,
                tf.take_pts,
                tf.take_status,
                tf.take_hide,
                tf.profile_ref,
                tf.prop_id,
                tf.prop_ref,
                tf.prop_status,
                tf.pack_ref,
                tf.pack_id,
                tf.pack_status,
            )
            .where(tf.take_status != "overwritten")
            .distinct()
            .order_by(tf.take_id)
        )

    def _fetch(self, identifiers, condition):
        return chunked_fetch(
            identifiers,
            lambda chunk: self.repository.run_aggregate_view(
                self._select().where(condition(chunk))
            ),
            chunk_size=self.chunk_size,
            max_workers=self.max_workers,
            record_key=lambda row: row.take_id,
        )

    def takes_by_ids(self, take_ids):
        return self._fetch(take_ids, lambda chunk: take_facts.c.take_id.in_(chunk))

    def takes_by_prop_ids(self, prop_ids):
        return self._fetch(prop_ids, lambda chunk: take_facts.c.prop_id.in_(chunk))

    def takes_by_filter(self, team_id=None, pack_refs=None, start=None, end=None):
        tf = take_facts.c
        conditions = []
        if team_id is not None:
            conditions.append(tf.team_id == team_id)
        if start is not None:
            conditions.append(tf.event_time >= start)
        if end is not None:
            conditions.append(tf.event_time < end)

        if pack_refs:
            return self._fetch(
                pack_refs, lambda chunk: and_(tf.pack_ref.in_(chunk), *conditions)
            )
        return self.repository.run_aggregate_view(self._select().where(*conditions))


class JoinStrategy:
    name = "join"

    def __init__(self, repository, chunk_size=LOOKUP_CHUNK_SIZE, max_workers=1):
        self.repository = repository
        self.chunk_size = chunk_size
        self.max_workers = max_workers

    def _select(self):
        return (
            select(
                Take.id.label("take_id"),
                Take.take_mobile,
                Take.take_result,
                Take.take_pts,
                Take.take_status,
                Take.take_hide,
                Take.profile_ref,
                Take.prop_id,
                Prop.id.label("prop_ref"),
                Prop.prop_status,
                Pack.id.label("pack_ref"),
                Pack.pack_id,
                Pack.pack_status,
            )
            .select_from(Take)
            .join(Prop, Prop.id == Take.prop_ref)
            .outerjoin(Pack, Pack.id == Prop.pack_ref)
            .where(Take.take_status != "overwritten")
            .order_by(Take.id)
        )

    def _fetch(self, identifiers, condition):
        return chunked_fetch(
            identifiers,
            lambda chunk: self.repository.run_query(self._select().where(condition(chunk))),
            chunk_size=self.chunk_size,
            max_workers=self.max_workers,
            record_key=lambda row: row.take_id,
        )

    def takes_by_ids(self, take_ids):
        return self._fetch(take_ids, lambda chunk: Take.id.in_(chunk))

    def takes_by_prop_ids(self, prop_ids):
        return self._fetch(prop_ids, lambda chunk: Take.prop_id.in_(chunk))

    def takes_by_filter(self, team_id=None, pack_refs=None, start=None, end=None):
        conditions = []
        if start is not None or end is not None:
            # packs -> pack-event links -> events
            window = []
            if start is not None:
                window.append(Event.event_time >= start)
            if end is not None:
                window.append(Event.event_time < end)
            packs_in_window = (
                select(packs_events.c.pack_id)
                .join(Event, Event.id == packs_events.c.event_id)
                .where(*window)
            )
            conditions.append(Prop.pack_ref.in_(packs_in_window))
        if team_id is not None:
            # props -> props-teams
            conditions.append(
                exists().where(
                    props_teams.c.prop_id == Prop.id, props_teams.c.team_id == team_id
                )
            )

        if pack_refs:
            return self._fetch(
                pack_refs, lambda chunk: and_(Prop.pack_ref.in_(chunk), *conditions)
            )
        return self.repository.run_query(self._select().where(*conditions))


class ScopeResolver:
    """
    Resolve scopes into normalized takes.

    The view probe result is remembered; call reset_probe() after
    installing the view to try it again.
    """

    def __init__(self, repository=None, chunk_size=LOOKUP_CHUNK_SIZE, max_workers=1):
        self.repository = repository or RecordRepository(
            chunk_size=chunk_size, max_workers=max_workers
        )
        self.chunk_size = chunk_size
        self.view_strategy = ViewStrategy(self.repository, chunk_size, max_workers)
        self.join_strategy = JoinStrategy(self.repository, chunk_size, max_workers)
        self.view_available = None

    def reset_probe(self):
        self.view_available = None

    @property
    def active_strategy(self):
        if self.view_available is False:
            return self.join_strategy
        return self.view_strategy

    def resolve(self, scope):
        """
        Return the takes selected by scope, sorted by record id.

        Unknown packs, teams or contests yield an empty list. Storage
        failures raise BackendUnavailable; there are no partial results.
        """
        with PerformanceMonitor(f"resolve_scope:{scope.cache_key()}"):
            fetch = self._plan(scope)
            if fetch is None:
                return []
            rows = self._run(fetch)
        takes = normalize_takes(rows)
        takes.sort(key=lambda t: t.record_id)
        logger.debug(f"Resolved {scope.cache_key()} to {len(takes)} takes")
        return takes

    def resolve_with(self, strategy, scope):
        """Resolve using a specific strategy, bypassing the probe"""
        fetch = self._plan(scope)
        if fetch is None:
            return []
        takes = normalize_takes(fetch(strategy))
        takes.sort(key=lambda t: t.record_id)
        return takes

    def _run(self, fetch):
        if self.view_available is not False:
            try:
                # The view query runs in a savepoint so a failure leaves the
                # caller's transaction and its pending changes intact
                with db.session.begin_nested():
                    rows = fetch(self.view_strategy)
                self.view_available = True
                return rows
            except ViewMissing as e:
                logger.warning(
                    f"Aggregate view unavailable, switching to base-table joins: {e}"
                )
                self.view_available = False
        try:
            return fetch(self.join_strategy)
        except ViewMissing as e:
            # Base tables themselves are missing
            raise BackendUnavailable(str(e)) from e

    # Scope planning: shared lookups, then a strategy call

    def _plan(self, scope):
        if isinstance(scope, PackScope):
            return self._plan_pack(scope)
        if isinstance(scope, FilterScope):
            return self._plan_filter(scope)
        if isinstance(scope, ContestScope):
            return self._plan_contest(scope)
        raise TypeError(f"Unsupported scope: {type(scope).__name__}")

    def _plan_pack(self, scope):
        with translate_db_errors():
            pack = Pack.find(scope.pack)
            if pack is None:
                logger.info(f"Pack not found for {scope.pack!r}, empty scope")
                return None
            take_ids = pack.linked_take_ids()
        if not take_ids:
            return None
        return lambda strategy: strategy.takes_by_ids(take_ids)

    def _plan_filter(self, scope):
        team_id = None
        pack_refs = None
        with translate_db_errors():
            if scope.team_slug:
                team = Team.resolve_slug(scope.team_slug)
                if team is None:
                    logger.info(f"Team not found for {scope.team_slug!r}, empty scope")
                    return None
                team_id = team.id
            if scope.pack_ids:
                pack_refs = self.resolve_pack_refs(scope.pack_ids)
                if not pack_refs:
                    logger.info(f"No packs matched {list(scope.pack_ids)}, empty scope")
                    return None
        return lambda strategy: strategy.takes_by_filter(
            team_id=team_id, pack_refs=pack_refs, start=scope.start, end=scope.end
        )

    def _plan_contest(self, scope):
        with translate_db_errors():
            contest = Contest.find(scope.contest)
            if contest is None:
                logger.info(f"Contest not found for {scope.contest!r}, empty scope")
                return None
            prop_ids = self.contest_prop_ids(contest)
        if not prop_ids:
            logger.info(f"Contest {contest.contest_id} has no props, empty scope")
            return None
        return lambda strategy: strategy.takes_by_prop_ids(prop_ids)

    def resolve_pack_refs(self, pack_ids):
        """Internal ids for a mix of internal ids and text pack ids"""
        identifiers = [str(p).strip() for p in pack_ids if str(p).strip()]

        def fetch(chunk):
            chunk_numeric = [int(p) for p in chunk if p.isdigit()]
            return (
                db.session.query(Pack.id)
                .filter(or_(Pack.pack_id.in_(chunk), Pack.id.in_(chunk_numeric)))
                .all()
            )

        rows = chunked_fetch(
            identifiers, fetch, chunk_size=self.chunk_size, record_key=lambda r: r.id
        )
        logger.debug(f"Pack refs resolved: {len(rows)} of {len(identifiers)}")
        return sorted(row.id for row in rows)

    def contest_prop_ids(self, contest):
        """contest -> linked packs -> props -> text prop ids"""
        pack_refs = [pack.id for pack in contest.packs]
        if not pack_refs:
            return []
        rows = chunked_fetch(
            pack_refs,
            lambda chunk: db.session.query(Prop.prop_id)
            .filter(Prop.pack_ref.in_(chunk))
            .order_by(Prop.id)
            .all(),
            chunk_size=self.chunk_size,
            record_key=lambda r: r.prop_id,
        )
        return [row.prop_id for row in rows if row.prop_id]


def get_scope_resolver():
    return current_app.extensions["scope_resolver"]
