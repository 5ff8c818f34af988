from takeboard.utils.leaderboard import aggregate_take_stats, build_leaderboard
from takeboard.utils.normalize import NormalizedTake


def take(record_id, mobile, points=0, result="pending", status="latest", hidden=False,
         prop_status="open", pack_status=None):
    return NormalizedTake(
        record_id=record_id,
        subject_key=mobile,
        points=points,
        result=result,
        status=status,
        hidden=hidden,
        prop_status=prop_status,
        pack_status=pack_status,
    )


def test_aggregate_counts_results():
    stats = aggregate_take_stats(
        [
            take(1, "+1", 10, "won"),
            take(2, "+1", 0, "lost"),
            take(3, "+1", 5, "pushed"),
            take(4, "+1", 0, "pending"),
            take(5, "+2", 20, "won"),
        ]
    )
    a = stats["+1"]
    assert (a.takes, a.points, a.won, a.lost, a.pushed, a.pending) == (4, 15, 1, 1, 1, 1)
    assert stats["+2"].points == 20


def test_aggregate_accepts_push_alias():
    stats = aggregate_take_stats([{"id": "r1", "fields": {"takeMobile": "+1", "takeResult": "Push"}}])
    assert stats["+1"].pushed == 1


def test_aggregate_drops_archived_and_draft():
    stats = aggregate_take_stats(
        [
            take(1, "+1", 10, prop_status="archived"),
            take(2, "+1", 10, pack_status="Draft"),
            take(3, "+1", 7),
        ]
    )
    assert stats["+1"].points == 7
    assert stats["+1"].takes == 1


def test_subject_with_only_invisible_takes_is_absent():
    stats = aggregate_take_stats(
        [take(1, "+1", 10, status="overwritten"), take(2, "+1", 10, hidden=True), take(3, "+2", 1)]
    )
    assert "+1" not in stats
    assert list(stats) == ["+2"]


def test_duplicate_records_counted_once():
    t = take(1, "+1", 10, "won")
    stats = aggregate_take_stats([t, t, t])
    assert stats["+1"].takes == 1
    assert stats["+1"].points == 10


def test_aggregation_is_idempotent():
    records = [take(1, "+1", 3), take(2, "+2", 4, hidden=True), take(3, "+2", 5)]
    assert aggregate_take_stats(records) == aggregate_take_stats(records)


def test_build_orders_by_points_then_takes():
    stats = aggregate_take_stats(
        [
            take(1, "A", 10),
            take(2, "B", 10),
            take(3, "B", 0),
            take(4, "C", 30),
        ]
    )
    rows = build_leaderboard(stats)
    assert [r.subject_key for r in rows] == ["C", "B", "A"]


def test_build_keeps_insertion_order_on_full_tie():
    stats = aggregate_take_stats([take(1, "X", 5), take(2, "Y", 5), take(3, "Z", 5)])
    assert [r.subject_key for r in build_leaderboard(stats)] == ["X", "Y", "Z"]


def test_build_decorates_profile_and_limits():
    stats = aggregate_take_stats([take(1, "A", 1), take(2, "B", 2), take(3, "C", 3)])
    rows = build_leaderboard(stats, profile_map={"C": "carol"}, limit=2)
    assert [r.subject_key for r in rows] == ["C", "B"]
    assert rows[0].profile_id == "carol"
    assert rows[1].profile_id is None
    assert rows[0].to_dict()["points"] == 3


def test_build_empty():
    assert build_leaderboard({}) == []
