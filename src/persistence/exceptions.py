"""Errors raised by the record persistence layer."""


class PersistenceError(Exception):
    """Base class for record persistence errors."""


class RecordNotAttachedError(PersistenceError):
    """Raised when a record is saved without a session to persist it."""

    def __init__(self, record: object):
        self.record = record
        super().__init__(
            f"{type(record).__name__} is not attached to a session; "
            "add it to a session or pass one to save()"
        )


class UnknownColumnError(PersistenceError, KeyError):
    """Raised when a column name cannot be resolved against a query or table."""

    def __init__(self, column: str, where: str):
        self.column = column
        super().__init__(f"Unknown column {column!r} for {where}")

    def __str__(self) -> str:
        return self.args[0]


class UnknownMacroError(PersistenceError, AttributeError):
    """Raised when a query attribute is neither a method nor a registered macro."""

    def __init__(self, name: str, model: type):
        self.name = name
        super().__init__(f"Query for {model.__name__} has no method or macro {name!r}")
