import pytest

from takeboard import cache
from takeboard.models import Contest, Pack
from takeboard.services.grading_service import (
    grade_contest,
    list_packs_without_winners,
    set_pack_winners,
)
from takeboard.services.leaderboard_service import clamp_limit, get_pack_leaderboard
from takeboard.services.scope_resolver import PackScope
from takeboard.services.winner_service import NO_WINNER, select_winner
from takeboard.utils.cache_utils import make_scope_key

ALICE = "+15550101"
BOB = "+15550102"
CAROL = "+15550103"


@pytest.fixture
def graded_pack(factory):
    alice = factory.profile(ALICE, profile_id="alice", username="Alice")
    factory.profile(BOB, profile_id="bob", username="Bob")
    pack = factory.pack(pack_id="pk-1", status="graded", title="Week 1")
    p1 = factory.prop(pack=pack, prop_id="w1-a")
    p2 = factory.prop(pack=pack, prop_id="w1-b")
    factory.take(p1, ALICE, 100, "won", profile=alice)
    factory.take(p2, ALICE, 0, "lost", profile=alice)
    factory.take(p1, BOB, 100, "won")
    factory.commit()
    return pack


class TestSelectWinner:
    def test_tie_on_points_broken_by_takes(self, graded_pack, resolver):
        winner = select_winner(PackScope("pk-1"), resolver=resolver)
        assert winner.subject_key == ALICE
        assert winner.points == 100
        assert winner.takes == 2
        assert winner.profile_id == "alice"
        assert winner.username == "Alice"

    def test_empty_scope_has_no_winner(self, factory, resolver):
        factory.pack(pack_id="empty")
        factory.commit()
        assert select_winner(PackScope("empty"), resolver=resolver) is NO_WINNER

    def test_winner_without_profile(self, factory, resolver):
        pack = factory.pack(pack_id="anon")
        factory.take(factory.prop(pack=pack), CAROL, 10, "won")
        factory.commit()

        winner = select_winner(PackScope("anon"), resolver=resolver)
        assert winner.subject_key == CAROL
        assert winner.profile_ref is None
        assert not winner.has_profile


class TestGradeContest:
    def test_contest_with_no_props_is_graded_without_winner(self, factory):
        pack = factory.pack(pack_id="no-props")
        factory.contest(contest_id="c-none", packs=[pack])
        factory.commit()

        result = grade_contest("c-none")

        assert result["graded"] is True
        assert result["winner"] is None
        contest = Contest.find("c-none")
        assert contest.is_graded
        assert contest.winner_profile_ref is None
        assert contest.graded_at is not None

    def test_contest_with_no_packs_is_graded_without_winner(self, factory):
        factory.contest(contest_id="c-bare")
        factory.commit()

        assert grade_contest("c-bare")["winner"] is None
        assert Contest.find("c-bare").is_graded

    def test_contest_winner_is_linked(self, graded_pack, factory):
        factory.contest(contest_id="c-1", packs=[graded_pack])
        factory.commit()

        result = grade_contest("c-1")

        assert result["winner"]["profile_id"] == "alice"
        contest = Contest.find("c-1")
        assert contest.winner.profile_id == "alice"
        assert contest.contest_status == "graded"

    def test_graded_contest_is_not_regraded(self, graded_pack, factory):
        contest = factory.contest(contest_id="c-1", packs=[graded_pack])
        factory.commit()
        grade_contest(contest)
        first_winner = contest.winner_profile_ref

        # New takes after grading do not change the winner
        factory.take(factory.prop(pack=graded_pack), BOB, 5000, "won")
        factory.commit()
        result = grade_contest("c-1")

        assert result["already_graded"] is True
        assert Contest.find("c-1").winner_profile_ref == first_winner

    def test_top_subject_without_profile_still_grades(self, factory):
        pack = factory.pack(pack_id="anon")
        factory.take(factory.prop(pack=pack), CAROL, 10, "won")
        factory.contest(contest_id="c-anon", packs=[pack])
        factory.commit()

        result = grade_contest("c-anon")

        assert result["winner"]["subject_key"] == CAROL
        assert result["winner"]["profile_ref"] is None
        contest = Contest.find("c-anon")
        assert contest.is_graded
        assert contest.winner_profile_ref is None

    def test_unknown_contest(self, app):
        assert grade_contest("missing") is None


class TestPackWinners:
    def test_assigns_winner_to_graded_packs(self, graded_pack):
        result = set_pack_winners()

        assert result == {"updated_count": 1, "errors": []}
        assert Pack.find("pk-1").winner.profile_id == "alice"
        assert list_packs_without_winners() == []

    def test_skips_open_packs_and_existing_winners(self, graded_pack, factory):
        other = factory.profile("+15550999", profile_id="other")
        open_pack = factory.pack(pack_id="open", status="open")
        factory.take(factory.prop(pack=open_pack), ALICE, 10, "won")
        graded_pack.winner_profile_ref = other.id
        factory.commit()

        result = set_pack_winners(["pk-1", "open"])

        assert result == {"updated_count": 0, "errors": []}
        assert Pack.find("pk-1").winner_profile_ref == other.id
        assert Pack.find("open").winner_profile_ref is None

    def test_reports_missing_profile(self, factory):
        pack = factory.pack(pack_id="anon", status="graded")
        factory.take(factory.prop(pack=pack), CAROL, 10, "won")
        factory.commit()

        result = set_pack_winners()

        assert result["updated_count"] == 0
        assert len(result["errors"]) == 1
        assert CAROL in result["errors"][0]
        assert [p.pack_id for p in list_packs_without_winners()] == ["anon"]

    def test_reports_unknown_pack(self, app):
        result = set_pack_winners(["ghost"])
        assert result["errors"] == ["Pack not found for ghost"]

    def test_graded_pack_without_takes_is_left_alone(self, factory):
        factory.pack(pack_id="quiet", status="graded")
        factory.commit()

        assert set_pack_winners() == {"updated_count": 0, "errors": []}

    def test_winner_assignment_invalidates_leaderboards(self, graded_pack):
        before = get_pack_leaderboard("pk-1")
        key = make_scope_key(PackScope("pk-1"), clamp_limit())
        assert cache.get(key) == before

        set_pack_winners()

        assert cache.get(key) is None
