"""
Shared pytest fixtures

Every test that needs storage gets a fresh application on TestingConfig
(in-memory SQLite, SimpleCache, scheduler off) and a Factory for building
profiles, packs, props and takes.
"""

import itertools

import pytest

from takeboard import create_app
from takeboard import db as _db
from takeboard.models import Contest, Event, Pack, Profile, Prop, Take, Team
from takeboard.models.take_facts import create_take_facts_view
from takeboard.services.scope_resolver import get_scope_resolver


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def resolver(app):
    return get_scope_resolver()


@pytest.fixture
def with_view(app, resolver):
    """Install v_take_facts and let the resolver probe it again"""
    create_take_facts_view(_db.session)
    resolver.reset_probe()
    return resolver


class Factory:
    """Builds and flushes model rows with sensible defaults"""

    def __init__(self):
        self._seq = itertools.count(1)

    def _next(self):
        return next(self._seq)

    def profile(self, mobile, profile_id=None, username=None):
        n = self._next()
        profile = Profile(
            profile_id=profile_id or f"profile{n}",
            mobile_e164=mobile,
            username=username or f"user{n}",
        )
        _db.session.add(profile)
        _db.session.flush()
        return profile

    def team(self, slug, name=None, league="nba"):
        team = Team(team_slug=slug, name=name or slug.title(), league=league)
        _db.session.add(team)
        _db.session.flush()
        return team

    def event(self, event_time, title=None):
        event = Event(title=title or f"Event {self._next()}", event_time=event_time)
        _db.session.add(event)
        _db.session.flush()
        return event

    def pack(self, pack_id=None, status="open", url=None, title=None, events=()):
        n = self._next()
        pack = Pack(
            pack_id=pack_id or f"pack{n}",
            pack_url=url,
            title=title,
            pack_status=status,
        )
        pack.events.extend(events)
        _db.session.add(pack)
        _db.session.flush()
        return pack

    def prop(self, pack=None, prop_id=None, status="open", teams=(), graded_at=None):
        prop = Prop(
            prop_id=prop_id or f"prop{self._next()}",
            pack_ref=pack.id if pack is not None else None,
            prop_status=status,
            graded_at=graded_at,
        )
        prop.teams.extend(teams)
        _db.session.add(prop)
        _db.session.flush()
        return prop

    def take(self, prop, mobile, pts=0, result="pending", status="latest", hide=False, profile=None):
        take = Take(
            prop_ref=prop.id,
            prop_id=prop.prop_id,
            take_mobile=mobile,
            take_pts=pts,
            take_result=result,
            take_status=status,
            take_hide=hide,
            profile_ref=profile.id if profile is not None else None,
        )
        _db.session.add(take)
        _db.session.flush()
        return take

    def contest(self, contest_id=None, packs=(), title=None):
        contest = Contest(contest_id=contest_id or f"contest{self._next()}", title=title)
        contest.packs.extend(packs)
        _db.session.add(contest)
        _db.session.flush()
        return contest

    def commit(self):
        _db.session.commit()


@pytest.fixture
def factory(app):
    return Factory()

