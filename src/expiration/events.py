"""Lifecycle events fired by expirable records."""

from enum import Enum

from src.persistence.events import HookKind


class ExpirationEvent(str, Enum):
    """Hooks around expire() and unexpire()."""

    EXPIRING = "expiring"
    EXPIRED = "expired"
    UNEXPIRING = "unexpiring"
    UNEXPIRED = "unexpired"

    @property
    def kind(self) -> HookKind:
        if self in (ExpirationEvent.EXPIRING, ExpirationEvent.UNEXPIRING):
            return HookKind.GUARD
        return HookKind.NOTIFY
