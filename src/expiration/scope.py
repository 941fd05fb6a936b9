"""
Expiration Scope.

Global query scope for expirable records:
- Hides rows whose expired-at timestamp has passed
- Installs the expire / unexpire / with_expired / only_expired query macros
- Resolves the expired-at column per query (qualified once joins are involved)

Bulk operations go straight to an UPDATE statement; no per-record
lifecycle hooks fire for them.
"""

from typing import TYPE_CHECKING

import structlog

from src.observability.logging import LogContext
from src.persistence.scopes import Scope

if TYPE_CHECKING:
    from src.persistence.model import Record
    from src.persistence.query import Query

logger = structlog.get_logger(__name__)

EXTENSIONS = ("expire", "unexpire", "with_expired", "only_expired")


class ExpirationScope(Scope):
    """
    Not-expired predicate applied to every query of an expirable record type.

    Usage:
        ```python
        Subscription.query(session).all()                   # active only
        Subscription.query(session).with_expired().all()    # everything
        Subscription.query(session).only_expired().all()    # expired only
        Subscription.query(session).where(...).expire()     # bulk expire
        ```
    """

    def apply(self, query: "Query", model: type["Record"]) -> None:
        """Add ``(expired_at > now OR expired_at IS NULL)`` as one AND-ed group."""
        column = query.column(self.resolve_expired_at_column(query))
        query.or_where(column > model.fresh_timestamp(), column.is_(None))

    def extend(self, query: "Query") -> None:
        for name in EXTENSIONS:
            query.macro(name, getattr(self, name))

    def expire(self, query: "Query") -> int:
        """Set the expired-at column to now on every matching row."""
        column = self.resolve_expired_at_column(query)
        with LogContext(model=query.model.__name__, operation="bulk_expire"):
            logger.debug("Bulk expire", column=column)
            return query.update({column: query.model.fresh_timestamp()})

    def unexpire(self, query: "Query") -> int:
        """Clear the expired-at column on every matching row, expired or not."""
        query = query.with_expired()
        column = self.resolve_expired_at_column(query)
        with LogContext(model=query.model.__name__, operation="bulk_unexpire"):
            logger.debug("Bulk unexpire", column=column)
            return query.update({column: None})

    def with_expired(self, query: "Query") -> "Query":
        return query.without_scope(self)

    def only_expired(self, query: "Query") -> "Query":
        query.without_scope(self)
        column = query.column(self.resolve_expired_at_column(query))
        return query.where(
            column.is_not(None),
            column < query.model.fresh_timestamp(),
        )

    def resolve_expired_at_column(self, query: "Query") -> str:
        if query.has_joins():
            return query.model.qualified_expired_at_column()
        return query.model.expired_at_column()


def with_expired(query: "Query") -> "Query":
    """Include expired rows in ``query``."""
    return query.with_expired()


def only_expired(query: "Query") -> "Query":
    """Restrict ``query`` to expired rows."""
    return query.only_expired()


def expire(query: "Query") -> int:
    """Bulk expire the rows matched by ``query``."""
    return query.expire()


def unexpire(query: "Query") -> int:
    """Bulk unexpire the rows matched by ``query``."""
    return query.unexpire()
