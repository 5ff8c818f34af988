"""
Cache utilities for Takeboard
Leaderboard reads go through an explicit LeaderboardCache bound to the app,
so TTL and bypass behaviour are visible to callers and tests.
"""

import logging

from flask import current_app

logger = logging.getLogger(__name__)


def make_scope_key(scope, limit=None):
    """Generate a cache key from a scope descriptor"""
    key = f"leaderboard_{scope.cache_key()}"
    if limit is not None:
        key = f"{key}_limit_{limit}"
    return key.replace("/", "_").replace(" ", "_")


class LeaderboardCache:
    """
    Thin wrapper over a Flask-Caching Cache with a fixed TTL

    Args:
        cache: flask_caching.Cache instance
        ttl: seconds a computed leaderboard stays fresh
    """

    def __init__(self, cache, ttl=60):
        self.cache = cache
        self.ttl = ttl
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, key, compute, bypass=False):
        """Return the cached value for key, computing and storing it on a miss.

        With bypass=True the cache is not read, but the fresh value is stored.
        """
        if not bypass:
            result = self.cache.get(key)
            if result is not None:
                self.hits += 1
                logger.debug(f"Leaderboard cache hit: {key}")
                return result

        self.misses += 1
        result = compute()
        self.cache.set(key, result, timeout=self.ttl)
        logger.debug(f"Leaderboard cache set: {key} (ttl={self.ttl}s)")
        return result

    def invalidate(self, key=None):
        """
        Drop one key, or every leaderboard.

        A full invalidation clears the shared cache backend so grading in
        the scheduler or CLI also reaches leaderboards cached by API workers.
        """
        if key:
            self.cache.delete(key)
            logger.info(f"Leaderboard cache invalidated: {key}")
            return
        try:
            self.cache.clear()
            logger.info("Leaderboard cache cleared")
        except Exception as e:
            logger.error(f"Failed to clear leaderboard cache: {e}")

    def get_stats(self):
        return {"hits": self.hits, "misses": self.misses, "ttl": self.ttl}


def get_leaderboard_cache():
    return current_app.extensions["leaderboard_cache"]
