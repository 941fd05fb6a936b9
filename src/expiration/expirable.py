"""
Expirable Records.

Mixin giving a record type soft expiration:
- Registers the ExpirationScope when the type boots
- Declares the expiring / expired / unexpiring / unexpired events
- expire() / unexpire() transitions guarded by cancellable hooks
"""

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import DateTime
from sqlalchemy.orm import MappedColumn, mapped_column

from src.expiration.events import ExpirationEvent
from src.expiration.scope import ExpirationScope
from src.persistence.events import Listener
from src.persistence.exceptions import UnknownColumnError
from src.persistence.timestamps import format_timestamp

logger = structlog.get_logger(__name__)

DEFAULT_EXPIRED_AT_COLUMN = "expired_at"


def expired_at_column_for(**kwargs: Any) -> MappedColumn[datetime | None]:
    """Column definition for the expired-at timestamp (nullable, indexed)."""
    kwargs.setdefault("nullable", True)
    kwargs.setdefault("index", True)
    return mapped_column(DateTime, **kwargs)


class Expirable:
    """
    Soft expiration for a record type.

    The record declares a nullable timestamp column, ``expired_at`` by
    default or the name given by an ``EXPIRED_AT`` class constant. A NULL or
    future value keeps the record visible; a past value hides it from every
    query unless the query opts in with ``with_expired()``/``only_expired()``.

    Usage:
        ```python
        class Subscription(Expirable, Record):
            __tablename__ = "subscriptions"

            id: Mapped[int] = mapped_column(primary_key=True)
            expired_at: Mapped[datetime | None] = expired_at_column_for()

        Subscription.on_expiring(lambda subscription: subscription.plan_id is not None)

        subscription.expire()
        ```
    """

    @classmethod
    def __boot__(cls) -> None:
        column = cls.expired_at_column()
        if column not in cls.__table__.c:
            raise UnknownColumnError(column, cls.__name__)

        cls.add_global_scope(ExpirationScope())
        cls.on_booted(lambda model: model.add_observable_events(*ExpirationEvent))

    # =========================================================================
    # Transitions
    # =========================================================================

    def expire(self) -> bool:
        """
        Expire this record now.

        Returns False without touching the record when an ``expiring``
        listener vetoes; otherwise returns the result of save(). The
        ``expired`` hook fires after the save attempt either way.
        """
        if self.fire_model_event(ExpirationEvent.EXPIRING) is False:
            logger.info("Expire vetoed", model=type(self).__name__, record=repr(self))
            return False

        expired_at = self.fresh_timestamp()
        self.set_column_value(self.expired_at_column(), expired_at)

        saved = self.save()
        self.fire_model_event(ExpirationEvent.EXPIRED)

        logger.info(
            "Record expired",
            model=type(self).__name__,
            record=repr(self),
            saved=saved,
            expired_at=format_timestamp(expired_at, self.get_date_format()),
        )
        return saved

    def unexpire(self) -> bool:
        """Clear the expiration of this record; symmetric to expire()."""
        if self.fire_model_event(ExpirationEvent.UNEXPIRING) is False:
            logger.info("Unexpire vetoed", model=type(self).__name__, record=repr(self))
            return False

        self.set_column_value(self.expired_at_column(), None)

        saved = self.save()
        self.fire_model_event(ExpirationEvent.UNEXPIRED)

        logger.info("Record unexpired", model=type(self).__name__, record=repr(self), saved=saved)
        return saved

    def is_expired(self) -> bool:
        expired_at = self.get_column_value(self.expired_at_column())
        return expired_at is not None and expired_at <= self.fresh_timestamp()

    # =========================================================================
    # Columns
    # =========================================================================

    @classmethod
    def expired_at_column(cls) -> str:
        return getattr(cls, "EXPIRED_AT", DEFAULT_EXPIRED_AT_COLUMN)

    @classmethod
    def qualified_expired_at_column(cls) -> str:
        return cls.qualify_column(cls.expired_at_column())

    # =========================================================================
    # Hook registrars
    # =========================================================================

    @classmethod
    def on_expiring(cls, callback: Listener) -> None:
        """Listener run before expire(); returning False cancels it."""
        cls.register_model_event(ExpirationEvent.EXPIRING, callback)

    @classmethod
    def on_expired(cls, callback: Listener) -> None:
        cls.register_model_event(ExpirationEvent.EXPIRED, callback)

    @classmethod
    def on_unexpiring(cls, callback: Listener) -> None:
        """Listener run before unexpire(); returning False cancels it."""
        cls.register_model_event(ExpirationEvent.UNEXPIRING, callback)

    @classmethod
    def on_unexpired(cls, callback: Listener) -> None:
        cls.register_model_event(ExpirationEvent.UNEXPIRED, callback)
