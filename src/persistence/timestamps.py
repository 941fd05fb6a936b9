"""
Timestamp Management for Records.

Provides:
- The clock used for every generated timestamp (fresh timestamps,
  expiration predicates)
- The string form of timestamps
- created_at / updated_at tracking for records that opt in
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, mapped_column

from src.config.settings import get_settings


def utcnow() -> datetime:
    """
    Current time as a naive datetime.

    Naive values are stored as-is by SQLite and compare lexically with
    stored values, so the clock never carries tzinfo.
    """
    if get_settings().expiration.use_utc:
        return datetime.now(timezone.utc).replace(tzinfo=None)
    return datetime.now()


def format_timestamp(value: datetime, date_format: str | None = None) -> str:
    """Serialize a timestamp using the configured date format."""
    return value.strftime(date_format or get_settings().expiration.date_format)


class HasTimestamps:
    """
    Mixin adding created_at / updated_at columns to a record.

    The record layer sets both on insert and refreshes updated_at on every
    save and every bulk update issued through a query.

    Usage:
        ```python
        class Subscription(HasTimestamps, Record):
            __tablename__ = "subscriptions"
            id: Mapped[int] = mapped_column(primary_key=True)
        ```
    """

    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"

    created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def update_timestamps(self, is_new: bool) -> None:
        """Stamp updated_at, and created_at when the record is new."""
        now = self.fresh_timestamp()
        self.set_column_value(self.UPDATED_AT, now)
        if is_new and self.get_column_value(self.CREATED_AT) is None:
            self.set_column_value(self.CREATED_AT, now)

    def touch(self) -> bool:
        """Refresh updated_at and save."""
        return self.save()
