from datetime import datetime

import pytest

from takeboard import db
from takeboard.models import Take
from takeboard.services.scope_resolver import (
    ContestScope,
    FilterScope,
    PackScope,
    ScopeResolver,
    parse_datetime,
)


@pytest.fixture
def dataset(factory):
    lakers = factory.team("lakers", "Los Angeles Lakers")
    celtics = factory.team("celtics", "Boston Celtics")
    jan = factory.event(datetime(2024, 1, 10, 18, 0))
    feb = factory.event(datetime(2024, 2, 10, 18, 0))

    pack_jan = factory.pack(pack_id="pk-jan", url="jan-pack", status="graded", events=[jan])
    pack_feb = factory.pack(pack_id="pk-feb", status="open", events=[feb])
    pack_draft = factory.pack(pack_id="pk-draft", status="draft")

    p1 = factory.prop(pack=pack_jan, prop_id="p1", teams=[lakers])
    p2 = factory.prop(pack=pack_jan, prop_id="p2", teams=[celtics])
    p3 = factory.prop(pack=pack_feb, prop_id="p3", teams=[lakers, celtics])
    p4 = factory.prop(pack=pack_draft, prop_id="p4")

    a, b, c = "+15550001", "+15550002", "+15550003"
    takes = {
        "a_p1": factory.take(p1, a, 300, "won"),
        "a_p1_old": factory.take(p1, a, 999, "won", status="overwritten"),
        "a_p2": factory.take(p2, a, 200, "won"),
        "a_p3": factory.take(p3, a, 100, "won"),
        "b_p1": factory.take(p1, b, 0, "lost"),
        "b_p2_hidden": factory.take(p2, b, 50, "won", hide=True),
        "b_p3": factory.take(p3, b, 400, "won"),
        "c_p4": factory.take(p4, c, 1000, "won"),
    }
    contest = factory.contest(contest_id="c-1", packs=[pack_jan, pack_feb])
    factory.contest(contest_id="c-empty")
    factory.commit()

    return {
        "packs": {"jan": pack_jan, "feb": pack_feb, "draft": pack_draft},
        "takes": takes,
        "contest": contest,
    }


def ids(takes):
    return [t.record_id for t in takes]


def expected(dataset, *names):
    return sorted(dataset["takes"][n].id for n in names)


SCOPES = [
    PackScope("pk-jan"),
    FilterScope(team_slug="LAKERS"),
    FilterScope(start="2024-01-01", end="2024-02-01"),
    FilterScope(pack_ids=("pk-feb", "pk-jan")),
    FilterScope(team_slug="celtics", start="2024-02-01T00:00:00Z"),
    FilterScope(),
    ContestScope("c-1"),
]


class TestPackScope:
    def test_lookup_by_pack_id_url_and_internal_id(self, dataset, resolver):
        pack = dataset["packs"]["jan"]
        want = expected(dataset, "a_p1", "a_p2", "b_p1", "b_p2_hidden")

        assert ids(resolver.resolve(PackScope("pk-jan"))) == want
        assert ids(resolver.resolve(PackScope("jan-pack"))) == want
        assert ids(resolver.resolve(PackScope(str(pack.id)))) == want

    def test_unknown_pack_is_empty(self, dataset, resolver):
        assert resolver.resolve(PackScope("nope")) == []

    def test_pack_without_takes_is_empty(self, factory, resolver):
        factory.pack(pack_id="empty")
        factory.commit()
        assert resolver.resolve(PackScope("empty")) == []

    def test_small_chunks_give_same_result(self, dataset, resolver):
        small = ScopeResolver(chunk_size=2)
        assert ids(small.resolve(PackScope("pk-jan"))) == ids(resolver.resolve(PackScope("pk-jan")))


class TestFilterScope:
    def test_team_slug_is_case_insensitive(self, dataset, resolver):
        takes = resolver.resolve(FilterScope(team_slug="LaKeRs"))
        assert ids(takes) == expected(dataset, "a_p1", "a_p3", "b_p1", "b_p3")

    def test_unknown_team_is_empty(self, dataset, resolver):
        assert resolver.resolve(FilterScope(team_slug="knicks")) == []

    def test_start_inclusive_end_exclusive(self, dataset, resolver):
        feb_only = expected(dataset, "a_p3", "b_p3")

        assert ids(resolver.resolve(FilterScope(start=datetime(2024, 2, 10, 18, 0)))) == feb_only
        assert ids(resolver.resolve(FilterScope(end=datetime(2024, 2, 10, 18, 0)))) == expected(
            dataset, "a_p1", "a_p2", "b_p1", "b_p2_hidden"
        )

    def test_pack_list_accepts_internal_and_text_ids(self, dataset, resolver):
        feb = dataset["packs"]["feb"]
        takes = resolver.resolve(FilterScope(pack_ids=(str(feb.id), "pk-draft")))
        assert ids(takes) == expected(dataset, "a_p3", "b_p3", "c_p4")

    def test_unknown_packs_are_empty(self, dataset, resolver):
        assert resolver.resolve(FilterScope(pack_ids=("missing",))) == []

    def test_no_filters_returns_every_current_take(self, dataset, resolver):
        takes = resolver.resolve(FilterScope())
        assert dataset["takes"]["a_p1_old"].id not in ids(takes)
        assert len(takes) == 7


class TestContestScope:
    def test_contest_takes(self, dataset, resolver):
        takes = resolver.resolve(ContestScope("c-1"))
        assert ids(takes) == expected(
            dataset, "a_p1", "a_p2", "a_p3", "b_p1", "b_p2_hidden", "b_p3"
        )

    def test_contest_without_packs_is_empty(self, dataset, resolver):
        assert resolver.resolve(ContestScope("c-empty")) == []

    def test_unknown_contest_is_empty(self, dataset, resolver):
        assert resolver.resolve(ContestScope("nope")) == []


class TestStrategies:
    def test_missing_view_falls_back_to_joins(self, dataset, resolver):
        takes = resolver.resolve(PackScope("pk-jan"))
        assert len(takes) == 4
        assert resolver.view_available is False
        assert resolver.active_strategy is resolver.join_strategy

    def test_fallback_keeps_pending_changes(self, dataset, factory, resolver):
        pack = dataset["packs"]["jan"]
        prop = factory.prop(pack=pack, prop_id="p-late")
        late = factory.take(prop, "+15550009", 70, "won")
        before = Take.query.count()

        takes = resolver.resolve(PackScope("pk-jan"))

        assert resolver.view_available is False
        assert late.id in ids(takes)
        assert Take.query.count() == before
        assert db.session.get(Take, late.id) is late

    def test_view_is_used_when_present(self, dataset, with_view):
        takes = with_view.resolve(PackScope("pk-jan"))
        assert len(takes) == 4
        assert with_view.view_available is True
        assert with_view.active_strategy is with_view.view_strategy

    @pytest.mark.parametrize("scope", SCOPES, ids=lambda s: s.cache_key())
    def test_view_and_join_agree(self, dataset, with_view, scope):
        via_view = with_view.resolve_with(with_view.view_strategy, scope)
        via_join = with_view.resolve_with(with_view.join_strategy, scope)
        assert via_view == via_join


class TestParseDatetime:
    def test_zulu_is_converted_to_naive_utc(self):
        assert parse_datetime("2024-01-10T18:00:00Z") == datetime(2024, 1, 10, 18, 0)

    def test_offset_is_converted_to_utc(self):
        assert parse_datetime("2024-01-10T20:00:00+02:00") == datetime(2024, 1, 10, 18, 0)

    def test_date_only(self):
        assert parse_datetime("2024-01-10") == datetime(2024, 1, 10)

    def test_blank(self):
        assert parse_datetime("") is None
        assert parse_datetime(None) is None

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_datetime("last tuesday")
