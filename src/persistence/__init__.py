"""
Record Persistence Module.

SQLAlchemy-backed record layer:
- Declarative records with a per-type boot sequence and registry
- Query builder with global scopes, joins, macros and bulk updates
- Guard/notify lifecycle events
- Timestamps and database session management
"""

from src.persistence.database import Database, get_database
from src.persistence.events import (
    EventDispatcher,
    HookKind,
    ModelEvent,
    resolve_listener,
)
from src.persistence.exceptions import (
    PersistenceError,
    RecordNotAttachedError,
    UnknownColumnError,
    UnknownMacroError,
)
from src.persistence.model import Base, Record
from src.persistence.query import Query
from src.persistence.registry import ModelRegistry
from src.persistence.scopes import Scope
from src.persistence.timestamps import HasTimestamps, format_timestamp, utcnow

__all__ = [
    # Records
    "Base",
    "Record",
    "ModelRegistry",
    # Queries
    "Query",
    "Scope",
    # Events
    "EventDispatcher",
    "HookKind",
    "ModelEvent",
    "resolve_listener",
    # Timestamps
    "HasTimestamps",
    "format_timestamp",
    "utcnow",
    # Database
    "Database",
    "get_database",
    # Errors
    "PersistenceError",
    "RecordNotAttachedError",
    "UnknownColumnError",
    "UnknownMacroError",
]
