"""Global query scopes."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.persistence.model import Record
    from src.persistence.query import Query


class Scope(ABC):
    """
    A predicate applied to every query built for a record type.

    Scopes are registered once per type and keyed by their class, so a
    query removes one by passing either the instance or the class.
    """

    @abstractmethod
    def apply(self, query: "Query", model: type["Record"]) -> None:
        """Add the scope's predicates to ``query``."""

    def extend(self, query: "Query") -> None:
        """Install query macros. Called once when a query is created."""
