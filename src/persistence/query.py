"""
Record Query Builder.

Builds SQLAlchemy statements for one record type:
- Composable predicates (AND by default, grouped OR)
- Joins, with plain/qualified column name resolution
- Global scopes applied once per built statement, removable per query
- Named macros installed by scopes
- ORM-enabled bulk UPDATE honoring joins and scopes
"""

import copy
import functools
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import Column, ColumnElement, and_, func, inspect, or_, select, tuple_, update
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from src.persistence import timestamps
from src.persistence.exceptions import UnknownColumnError, UnknownMacroError
from src.persistence.registry import ModelRegistry
from src.persistence.scopes import Scope

if TYPE_CHECKING:
    from src.persistence.model import Record

logger = structlog.get_logger(__name__)


def _table_of(target: Any) -> Any:
    """Selectable behind a join target (mapped class, alias or table)."""
    insp = inspect(target)
    table = getattr(insp, "local_table", None)
    if table is None:
        table = getattr(insp, "selectable", insp)
    return table


def _table_name(table: Any) -> str:
    return getattr(table, "fullname", None) or table.name


class Query:
    """
    Query for one record type.

    Every global scope registered for the type is copied onto the query when
    it is created; each scope's ``extend`` installs its macros. Scopes are
    applied to a copy of the query each time a statement is built, so a
    query can be executed repeatedly without stacking predicates.

    Usage:
        ```python
        query = Subscription.query(session).where(Subscription.plan_id == plan.id)
        active = query.all()
        everything = query.with_expired().all()
        ```
    """

    def __init__(
        self,
        session: Session,
        model: type["Record"],
        registry: ModelRegistry | None = None,
    ) -> None:
        self.session = session
        self.model = model
        self.registry = registry or model.model_registry()

        self._wheres: list[ColumnElement[bool]] = []
        self._joins: list[tuple[Any, Any, bool]] = []
        self._order_by: list[Any] = []
        self._limit: int | None = None
        self._offset: int | None = None

        self._scopes: dict[type[Scope], Scope] = dict(self.registry.scopes)
        self._removed_scopes: list[type[Scope]] = []
        self._macros: dict[str, Callable[..., Any]] = {}

        for scope in self._scopes.values():
            scope.extend(self)

    # =========================================================================
    # Predicates
    # =========================================================================

    def where(self, *criteria: ColumnElement[bool]) -> "Query":
        self._wheres.extend(criteria)
        return self

    def or_where(self, *criteria: ColumnElement[bool]) -> "Query":
        """Add one parenthesized OR group, ANDed with the other predicates."""
        if criteria:
            self._wheres.append(or_(*criteria))
        return self

    def where_null(self, column: str) -> "Query":
        return self.where(self.column(column).is_(None))

    def where_not_null(self, column: str) -> "Query":
        return self.where(self.column(column).is_not(None))

    def wheres(self) -> list[ColumnElement[bool]]:
        return list(self._wheres)

    # =========================================================================
    # Joins and columns
    # =========================================================================

    def join(self, target: Any, onclause: Any = None, *, isouter: bool = False) -> "Query":
        self._joins.append((target, onclause, isouter))
        return self

    def has_joins(self) -> bool:
        return bool(self._joins)

    def column(self, name: str) -> Column:
        """
        Resolve a column name.

        Plain names resolve against the record's table. Qualified names
        (``table.column`` or ``schema.table.column``) resolve against the
        record's table or any joined table.
        """
        table_name, _, column_name = name.rpartition(".")
        tables = [self.model.__table__] + [_table_of(target) for target, _, _ in self._joins]

        for table in tables:
            if table_name and _table_name(table) != table_name:
                continue
            column = table.c.get(column_name)
            if column is not None:
                return column
            if not table_name:
                break

        raise UnknownColumnError(name, f"query on {self.model.__name__}")

    # =========================================================================
    # Ordering and paging
    # =========================================================================

    def order_by(self, *clauses: Any) -> "Query":
        self._order_by.extend(clauses)
        return self

    def limit(self, limit: int | None) -> "Query":
        self._limit = limit
        return self

    def offset(self, offset: int | None) -> "Query":
        self._offset = offset
        return self

    # =========================================================================
    # Scopes
    # =========================================================================

    def without_scope(self, scope: Scope | type[Scope]) -> "Query":
        """Stop applying a global scope to this query."""
        key = scope if isinstance(scope, type) else type(scope)
        if self._scopes.pop(key, None) is not None:
            self._removed_scopes.append(key)
        return self

    def without_scopes(self, *scopes: Scope | type[Scope]) -> "Query":
        for scope in scopes or list(self._scopes):
            self.without_scope(scope)
        return self

    def removed_scopes(self) -> list[type[Scope]]:
        return list(self._removed_scopes)

    def scopes(self) -> dict[type[Scope], Scope]:
        return dict(self._scopes)

    def apply_scopes(self) -> "Query":
        """Copy of this query with every active scope applied."""
        applied = copy.copy(self)
        applied._wheres = list(self._wheres)
        applied._scopes = {}
        for scope in self._scopes.values():
            scope.apply(applied, self.model)
        return applied

    # =========================================================================
    # Macros
    # =========================================================================

    def macro(self, name: str, fn: Callable[..., Any]) -> None:
        """Register ``fn`` as ``query.<name>(...)``; the query is passed first."""
        self._macros[name] = fn

    def has_macro(self, name: str) -> bool:
        return name in self._macros

    def macros(self) -> dict[str, Callable[..., Any]]:
        return dict(self._macros)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        macros = self.__dict__.get("_macros", {})
        if name in macros:
            return functools.partial(macros[name], self)
        raise UnknownMacroError(name, self.__dict__.get("model", type(self)))

    # =========================================================================
    # Statements
    # =========================================================================

    def to_select(self) -> Select:
        return self._select(self.model)

    def _select(self, *entities: Any) -> Select:
        query = self.apply_scopes()
        statement = select(*entities)

        for target, onclause, isouter in query._joins:
            statement = statement.join(target, onclause, isouter=isouter)
        if query._wheres:
            statement = statement.where(and_(*query._wheres))
        if query._order_by:
            statement = statement.order_by(*query._order_by)
        if query._limit is not None:
            statement = statement.limit(query._limit)
        if query._offset is not None:
            statement = statement.offset(query._offset)

        return statement

    # =========================================================================
    # Execution
    # =========================================================================

    def all(self) -> list["Record"]:
        return list(self.session.scalars(self.to_select()).unique().all())

    def first(self) -> "Record | None":
        return self.session.scalars(self.to_select().limit(1)).first()

    def find(self, ident: Any) -> "Record | None":
        pk = inspect(self.model).primary_key[0]
        return self.where(pk == ident).first()

    def count(self) -> int:
        subquery = self.to_select().order_by(None).subquery()
        return self.session.scalar(select(func.count()).select_from(subquery)) or 0

    def exists(self) -> bool:
        return bool(self.session.scalar(select(self.to_select().order_by(None).exists())))

    def update(self, values: dict[str, Any]) -> int:
        """
        Bulk UPDATE every row matching this query.

        Keys are plain or qualified column names of the record's table.
        Timestamped records also get updated_at refreshed. Loaded instances
        of the record type are expired so they reload on next access.
        Returns the number of matched rows.
        """
        values = dict(values)

        if issubclass(self.model, timestamps.HasTimestamps):
            updated_at = self.model.UPDATED_AT
            if not any(key.rpartition(".")[2] == updated_at for key in values):
                values[updated_at] = self.model.fresh_timestamp()

        assignments = {
            getattr(self.model, self.model.attribute_for_column(key)): value
            for key, value in values.items()
        }

        # Rows are picked by primary key so joins, outer joins and paging
        # match exactly what to_select() returns
        primary_key = inspect(self.model).primary_key
        matched = self._select(*primary_key).correlate(None)
        if self._limit is None and self._offset is None:
            matched = matched.order_by(None)
        target = primary_key[0] if len(primary_key) == 1 else tuple_(*primary_key)

        statement = (
            update(self.model)
            .where(target.in_(matched))
            .values(assignments)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(statement)

        for instance in list(self.session.identity_map.values()):
            if isinstance(instance, self.model):
                self.session.expire(instance)

        logger.info(
            "Bulk update executed",
            model=self.model.__name__,
            columns=sorted(values),
            joined=self.has_joins(),
            rows=result.rowcount,
        )
        return result.rowcount

    def __iter__(self) -> Iterable["Record"]:
        return iter(self.all())

    def __copy__(self) -> "Query":
        clone = Query.__new__(Query)
        clone.__dict__.update(self.__dict__)
        clone._wheres = list(self._wheres)
        clone._joins = list(self._joins)
        clone._order_by = list(self._order_by)
        clone._scopes = dict(self._scopes)
        clone._removed_scopes = list(self._removed_scopes)
        clone._macros = dict(self._macros)
        return clone
