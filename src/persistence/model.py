"""
Record Base Classes.

Declarative base for mapped records plus the record-type boot sequence:
- Each concrete record type gets its own ModelRegistry when the class is created
- Mixins hook into booting by defining a ``__boot__`` classmethod
- Booted callbacks run once every mixin has booted
- Lifecycle events, column naming and persistence helpers for instances
"""

import threading
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import inspect
from sqlalchemy.orm import DeclarativeBase, Session, object_session

from src.persistence import timestamps
from src.persistence.events import HookKind, Listener, ModelEvent
from src.persistence.exceptions import RecordNotAttachedError, UnknownColumnError
from src.persistence.registry import ModelRegistry
from src.persistence.scopes import Scope

if TYPE_CHECKING:
    from src.persistence.query import Query

logger = structlog.get_logger(__name__)

_boot_lock = threading.RLock()


class Base(DeclarativeBase):
    """Declarative base shared by all records."""


class Record(Base):
    """
    Abstract base for persistable records.

    Usage:
        ```python
        class Plan(Record):
            __tablename__ = "plans"

            id: Mapped[int] = mapped_column(primary_key=True)
            name: Mapped[str] = mapped_column(String(64))

        with database.session_scope() as session:
            plan = Plan(name="basic")
            plan.save(session)
            plans = Plan.query(session).where(Plan.name == "basic").all()
        ```
    """

    __abstract__ = True

    # strftime format for fresh_timestamp_string(); None uses settings
    DATE_FORMAT = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.__dict__.get("__abstract__", False):
            return
        cls._boot_if_not_booted()

    # =========================================================================
    # Boot sequence
    # =========================================================================

    @classmethod
    def _boot_if_not_booted(cls) -> None:
        with _boot_lock:
            if "__model_registry__" in cls.__dict__:
                return

            registry = ModelRegistry(model_name=cls.__name__)
            cls.__model_registry__ = registry

            for klass in reversed(cls.__mro__):
                hook = klass.__dict__.get("__boot__")
                if hook is not None:
                    hook.__get__(None, cls)()

            for callback in registry.booted_callbacks:
                callback(cls)
            registry.booted = True

        logger.debug(
            "Record type booted",
            model=cls.__name__,
            scopes=[scope.__name__ for scope in registry.scopes],
            observable_events=registry.observable_events,
        )

    @classmethod
    def model_registry(cls) -> ModelRegistry:
        """Configuration object of this record type."""
        registry = cls.__dict__.get("__model_registry__")
        if registry is None:
            raise TypeError(f"{cls.__name__} is abstract and has no model registry")
        return registry

    @classmethod
    def on_booted(cls, callback: Callable[[type], Any]) -> None:
        """Run ``callback`` once the type has booted (immediately if it already has)."""
        registry = cls.model_registry()
        if registry.booted:
            callback(cls)
        else:
            registry.booted_callbacks.append(callback)

    # =========================================================================
    # Scopes and queries
    # =========================================================================

    @classmethod
    def add_global_scope(cls, scope: Scope) -> None:
        cls.model_registry().add_scope(scope)

    @classmethod
    def global_scopes(cls) -> dict[type[Scope], Scope]:
        return dict(cls.model_registry().scopes)

    @classmethod
    def query(cls, session: Session) -> "Query":
        """Start a query for this record type with every global scope registered."""
        from src.persistence.query import Query

        return Query(session, cls)

    # =========================================================================
    # Events
    # =========================================================================

    @classmethod
    def register_model_event(cls, event: str | Enum, listener: Listener) -> None:
        cls.model_registry().events.listen(event, listener)

    @classmethod
    def observe(cls, *observers: Any) -> None:
        """
        Register observer objects.

        Every method named after an observable event becomes a listener for
        that event. Classes are instantiated first.
        """
        for observer in observers:
            instance = observer() if isinstance(observer, type) else observer
            for name in cls.observable_events():
                method = getattr(instance, name, None)
                if callable(method):
                    cls.register_model_event(name, method)

    @classmethod
    def observable_events(cls) -> list[str]:
        return list(cls.model_registry().observable_events)

    @classmethod
    def add_observable_events(cls, *events: str | Enum) -> None:
        cls.model_registry().add_observable_events(*events)

    @classmethod
    def remove_observable_events(cls, *events: str | Enum) -> None:
        cls.model_registry().remove_observable_events(*events)

    @classmethod
    def flush_event_listeners(cls) -> None:
        """Remove every listener registered for this record type."""
        cls.model_registry().events.flush()

    def fire_model_event(self, event: str | Enum) -> bool | None:
        """
        Fire a lifecycle event for this record.

        Guard events return False when a listener vetoes, True otherwise.
        Notify events run every listener and return None.
        """
        registry = type(self).model_registry()
        dispatcher = registry.events

        if registry.event_kind(event) is HookKind.NOTIFY:
            dispatcher.dispatch(event, self)
            return None

        return dispatcher.until(event, self) is not False

    # =========================================================================
    # Persistence
    # =========================================================================

    def save(self, session: Session | None = None) -> bool:
        """
        Persist the record.

        Returns False when a saving/creating/updating listener vetoes.
        Database errors propagate to the caller.
        """
        session = session or object_session(self)
        if session is None:
            raise RecordNotAttachedError(self)

        state = inspect(self)
        is_new = state.transient or state.pending

        if not self.fire_model_event(ModelEvent.SAVING):
            logger.debug("Save vetoed", model=type(self).__name__, hook=ModelEvent.SAVING.value)
            return False

        guard = ModelEvent.CREATING if is_new else ModelEvent.UPDATING
        if not self.fire_model_event(guard):
            logger.debug("Save vetoed", model=type(self).__name__, hook=guard.value)
            return False

        if isinstance(self, timestamps.HasTimestamps):
            self.update_timestamps(is_new)

        session.add(self)
        session.flush()

        self.fire_model_event(ModelEvent.CREATED if is_new else ModelEvent.UPDATED)
        self.fire_model_event(ModelEvent.SAVED)
        return True

    # =========================================================================
    # Columns
    # =========================================================================

    @classmethod
    def qualify_column(cls, column: str) -> str:
        """Prefix a column name with the (schema-qualified) table name."""
        if "." in column:
            return column
        return f"{cls.__table__.fullname}.{column}"

    @classmethod
    def attribute_for_column(cls, column: str) -> str:
        """Mapped attribute name for a plain or qualified column name."""
        table = cls.__table__
        prefix, _, name = column.rpartition(".")
        table_column = table.c.get(name)

        if table_column is None or (prefix and prefix != table.fullname):
            raise UnknownColumnError(column, cls.__name__)

        return inspect(cls).get_property_by_column(table_column).key

    def get_column_value(self, column: str) -> Any:
        return getattr(self, self.attribute_for_column(column))

    def set_column_value(self, column: str, value: Any) -> None:
        setattr(self, self.attribute_for_column(column), value)

    # =========================================================================
    # Timestamps
    # =========================================================================

    @classmethod
    def get_date_format(cls) -> str | None:
        return cls.DATE_FORMAT

    @classmethod
    def fresh_timestamp(cls) -> datetime:
        return timestamps.utcnow()

    @classmethod
    def fresh_timestamp_string(cls) -> str:
        return timestamps.format_timestamp(cls.fresh_timestamp(), cls.get_date_format())

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for attr in inspect(type(self)).column_attrs:
            value = getattr(self, attr.key)
            if isinstance(value, datetime):
                value = timestamps.format_timestamp(value, self.get_date_format())
            data[attr.key] = value
        return data

    def __repr__(self) -> str:
        identity = inspect(self).identity
        key = identity[0] if identity and len(identity) == 1 else identity
        return f"<{type(self).__name__} {key}>"
