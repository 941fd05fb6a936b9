"""Per-record-type configuration built once when the type boots."""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from src.persistence.events import EventDispatcher, HookKind, ModelEvent, event_kind, event_name
from src.persistence.scopes import Scope


@dataclass
class ModelRegistry:
    """
    Configuration object for one record type.

    Holds the global scopes applied to every query, the event dispatcher,
    the observable event names with their hook kinds and the booted
    callbacks. Written while the type boots, read-only afterwards.
    """

    model_name: str
    scopes: dict[type[Scope], Scope] = field(default_factory=dict)
    events: EventDispatcher = field(init=False)
    observable_events: list[str] = field(
        default_factory=lambda: [event.value for event in ModelEvent]
    )
    event_kinds: dict[str, HookKind] = field(
        default_factory=lambda: {event.value: event.kind for event in ModelEvent}
    )
    booted_callbacks: list[Callable[[type], Any]] = field(default_factory=list)
    booted: bool = False

    def __post_init__(self) -> None:
        self.events = EventDispatcher(self.model_name)

    def add_scope(self, scope: Scope) -> None:
        self.scopes[type(scope)] = scope

    def add_observable_events(self, *events: str | Enum) -> None:
        for event in events:
            name = event_name(event)
            if name not in self.observable_events:
                self.observable_events.append(name)
            if isinstance(getattr(event, "kind", None), HookKind):
                self.event_kinds[name] = event.kind

    def remove_observable_events(self, *events: str | Enum) -> None:
        names = {event_name(event) for event in events}
        self.observable_events = [e for e in self.observable_events if e not in names]

    def event_kind(self, event: str | Enum) -> HookKind:
        """Kind of an event, looking plain names up among the declared events."""
        return self.event_kinds.get(event_name(event)) or event_kind(event)
