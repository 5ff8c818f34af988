"""
Error taxonomy for the scoring engine.

Missing packs, teams and contests are not errors: resolvers return an
empty take set so "no leaderboard yet" and "nothing to grade" need no
special-casing. Only storage failures escape to callers.
"""

import re

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

TAKE_FACTS_VIEW = "v_take_facts"

# SQLSTATE for undefined_table
UNDEFINED_TABLE_CODE = "42P01"


class TakeboardError(Exception):
    """Base class for engine errors"""


class BackendUnavailable(TakeboardError):
    """Storage failure unrelated to a missing view; never retried internally"""


class ViewMissing(TakeboardError):
    """The aggregate view does not exist; handled by the resolver fallback"""


def is_view_missing(error, view_name=TAKE_FACTS_VIEW):
    """Return True if a database error means the aggregate view is absent"""
    orig = getattr(error, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    # The driver message only; str(error) also carries the failed SQL text
    message = str(orig) if orig is not None else str(error)
    names_view = re.search(re.escape(view_name), message, re.IGNORECASE) is not None
    if code is not None:
        # undefined_table for some other relation is a backend failure
        return code == UNDEFINED_TABLE_CODE and names_view
    return names_view


def classify_db_error(error, view_name=TAKE_FACTS_VIEW):
    """Translate a SQLAlchemy error into ViewMissing or BackendUnavailable"""
    if isinstance(error, DBAPIError) and is_view_missing(error, view_name):
        return ViewMissing(str(error))
    if isinstance(error, SQLAlchemyError):
        return BackendUnavailable(str(error))
    return error
