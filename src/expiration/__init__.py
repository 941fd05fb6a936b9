"""
Record Expiration.

Soft expiration for records:
- ExpirationScope hides expired rows from every query of a record type
- with_expired / only_expired lift or invert the filter per query
- expire / unexpire bulk-update matching rows without firing hooks
- Expirable gives loaded records expire()/unexpire() with cancellable hooks
"""

from src.expiration.events import ExpirationEvent
from src.expiration.expirable import (
    DEFAULT_EXPIRED_AT_COLUMN,
    Expirable,
    expired_at_column_for,
)
from src.expiration.scope import (
    ExpirationScope,
    expire,
    only_expired,
    unexpire,
    with_expired,
)

__all__ = [
    # Behavior
    "Expirable",
    "ExpirationEvent",
    "DEFAULT_EXPIRED_AT_COLUMN",
    "expired_at_column_for",
    # Scope
    "ExpirationScope",
    "with_expired",
    "only_expired",
    "expire",
    "unexpire",
]
