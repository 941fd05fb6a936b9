"""
Record Lifecycle Events.

Provides the per-record-type event machinery:
- Guard hooks that run before a transition and may veto it
- Notify hooks that run after a transition and only observe it
- Lazy resolution of named handler references
- Observer objects mapping method names to events
"""

import pkgutil
from collections import defaultdict
from collections.abc import Callable
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

Listener = Callable[[Any], Any] | str


class HookKind(str, Enum):
    """How an event's listeners affect the operation that fires it."""

    GUARD = "guard"    # Runs before; a False response vetoes
    NOTIFY = "notify"  # Runs after; responses are ignored


class ModelEvent(str, Enum):
    """Events fired by every record while saving."""

    SAVING = "saving"
    SAVED = "saved"
    CREATING = "creating"
    CREATED = "created"
    UPDATING = "updating"
    UPDATED = "updated"

    @property
    def kind(self) -> HookKind:
        if self in (ModelEvent.SAVING, ModelEvent.CREATING, ModelEvent.UPDATING):
            return HookKind.GUARD
        return HookKind.NOTIFY


def event_name(event: str | Enum) -> str:
    """Plain string name of an event."""
    if isinstance(event, Enum):
        return str(event.value)
    return event


def event_kind(event: str | Enum) -> HookKind:
    """
    Kind of an event.

    Enum members carry their own kind. Plain strings naming a save event
    use that event's kind; any other name is treated as a guard.
    """
    kind = getattr(event, "kind", None)
    if isinstance(kind, HookKind):
        return kind
    try:
        return ModelEvent(event_name(event)).kind
    except ValueError:
        return HookKind.GUARD


def resolve_listener(listener: Listener) -> Callable[[Any], Any]:
    """
    Turn a listener reference into a callable.

    Strings use ``pkgutil.resolve_name`` syntax (``"pkg.module:attr"``).
    Classes are instantiated and their ``handle`` method is used.
    """
    target = pkgutil.resolve_name(listener) if isinstance(listener, str) else listener

    if isinstance(target, type):
        target = target().handle

    if not callable(target):
        raise TypeError(f"Event listener {listener!r} is not callable")

    return target


class EventDispatcher:
    """
    Ordered listener registry for one record type.

    Listeners are invoked in registration order. Named references are kept
    as strings and resolved when the event fires, so handlers may live in
    modules that import the record type.
    """

    def __init__(self, owner: str) -> None:
        self.owner = owner
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def listen(self, event: str | Enum, listener: Listener) -> None:
        name = event_name(event)
        self._listeners[name].append(listener)
        logger.debug("Listener registered", owner=self.owner, hook=name, listener=repr(listener))

    def listeners(self, event: str | Enum) -> list[Listener]:
        return list(self._listeners.get(event_name(event), []))

    def has_listeners(self, event: str | Enum) -> bool:
        return bool(self._listeners.get(event_name(event)))

    def until(self, event: str | Enum, payload: Any) -> Any:
        """
        Fire a guard event.

        Stops at the first listener returning something other than None and
        returns that response; returns None when every listener passes.
        """
        for listener in self.listeners(event):
            response = resolve_listener(listener)(payload)
            if response is not None:
                return response
        return None

    def dispatch(self, event: str | Enum, payload: Any) -> None:
        """Fire a notify event. Every listener runs and responses are ignored."""
        for listener in self.listeners(event):
            resolve_listener(listener)(payload)

    def forget(self, event: str | Enum) -> None:
        self._listeners.pop(event_name(event), None)

    def flush(self) -> None:
        self._listeners.clear()
