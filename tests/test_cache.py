from takeboard import cache
from takeboard.services.scope_resolver import FilterScope, PackScope
from takeboard.utils.cache_utils import LeaderboardCache, make_scope_key


def test_scope_keys_differ_by_scope_and_limit():
    assert make_scope_key(PackScope("a")) != make_scope_key(PackScope("b"))
    assert make_scope_key(PackScope("a"), 10) != make_scope_key(PackScope("a"), 20)


def test_filter_scope_key_ignores_pack_order_and_slug_case():
    a = FilterScope(team_slug="Lakers", pack_ids=("p2", "p1"))
    b = FilterScope(team_slug="lakers", pack_ids=("p1", "p2"))
    assert make_scope_key(a) == make_scope_key(b)


def test_get_or_compute_caches(app):
    lb_cache = LeaderboardCache(cache, ttl=30)
    calls = []

    def compute():
        calls.append(1)
        return {"title": "t", "leaderboard": []}

    assert lb_cache.get_or_compute("k", compute) == {"title": "t", "leaderboard": []}
    lb_cache.get_or_compute("k", compute)
    assert len(calls) == 1
    assert lb_cache.get_stats() == {"hits": 1, "misses": 1, "ttl": 30}


def test_bypass_recomputes(app):
    lb_cache = LeaderboardCache(cache, ttl=30)
    values = iter([1, 2])

    assert lb_cache.get_or_compute("k", lambda: next(values)) == 1
    assert lb_cache.get_or_compute("k", lambda: next(values), bypass=True) == 2
    # fresh value was stored
    assert lb_cache.get_or_compute("k", lambda: 99) == 2


def test_invalidate(app):
    lb_cache = LeaderboardCache(cache, ttl=30)
    lb_cache.get_or_compute("a", lambda: 1)
    lb_cache.get_or_compute("b", lambda: 2)

    lb_cache.invalidate("a")
    assert lb_cache.get_or_compute("a", lambda: 10) == 10
    assert lb_cache.get_or_compute("b", lambda: 20) == 2

    lb_cache.invalidate()
    assert lb_cache.get_or_compute("b", lambda: 30) == 30


def test_invalidate_reaches_other_instances(app):
    api_worker = LeaderboardCache(cache, ttl=30)
    grading_job = LeaderboardCache(cache, ttl=30)
    api_worker.get_or_compute("leaderboard_pack_p1", lambda: {"rows": "stale"})

    grading_job.invalidate()

    assert cache.get("leaderboard_pack_p1") is None
    assert api_worker.get_or_compute("leaderboard_pack_p1", lambda: {"rows": "fresh"}) == {
        "rows": "fresh"
    }
