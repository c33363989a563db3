"""
Generic document store interface.

Documents are JSON-like dicts addressed by ``"<collection>/<id>"`` paths.
Partial updates accept plain values plus three field operations:
``Increment`` (atomic add), ``SERVER_TIMESTAMP`` (store-assigned time) and
``ArrayUnion`` (append values not already present).
"""

from __future__ import annotations

import abc
import operator
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Field operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Increment:
    """Atomically add ``amount`` to a numeric field (missing counts as 0)."""

    amount: int | float


@dataclass(frozen=True)
class ArrayUnion:
    """Append each value that is not already in the array field."""

    values: tuple[Any, ...]

    def __init__(self, *values: Any) -> None:  # noqa: ANN401
        object.__setattr__(self, "values", values)


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """Base class for document store failures."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


class DocumentNotFoundError(StoreError):
    """An update targeted a document that does not exist."""


class DocumentExistsError(StoreError):
    """A create targeted a document that already exists."""


class PreconditionFailedError(StoreError):
    """A batch check rejected the current state of a document."""


class BatchCommitError(StoreError):
    """Some queued writes failed after the batch was sent.

    ``applied`` lists the paths whose writes did go through, so a caller can
    compensate.
    """

    def __init__(self, message: str, applied: list[str], failed: list[str]) -> None:
        self.applied = applied
        self.failed = failed
        super().__init__(message, failed[0] if failed else None)


# ---------------------------------------------------------------------------
# Paths and documents
# ---------------------------------------------------------------------------


def doc_path(collection: str, doc_id: str) -> str:
    """Join a collection name and document id into a path."""
    return f"{collection}/{doc_id}"


def split_path(path: str) -> tuple[str, str]:
    """Split ``"collection/id"`` into its parts."""
    collection, sep, doc_id = path.partition("/")
    if not sep or not collection or not doc_id or "/" in doc_id:
        msg = f"Invalid document path: {path!r}"
        raise ValueError(msg)
    return collection, doc_id


@dataclass
class Document:
    """A stored document with its id and decoded fields."""

    collection: str
    id: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return doc_path(self.collection, self.id)

    def get(self, key: str, default: Any = None) -> Any:  # noqa: ANN401
        return self.data.get(key, default)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

FILTER_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@dataclass(frozen=True)
class Filter:
    """A single ``field <op> value`` query condition."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPERATORS:
            msg = f"Unsupported filter operator: {self.op}"
            raise ValueError(msg)

    def matches(self, data: dict[str, Any]) -> bool:
        if self.field not in data:
            return False
        try:
            return FILTER_OPERATORS[self.op](data[self.field], self.value)
        except TypeError:
            return False


def apply_query(
    docs: Iterable[Document],
    filters: Iterable[Filter] = (),
    order_by: str | None = None,
    descending: bool = False,
    limit: int | None = None,
) -> list[Document]:
    """Filter, order and limit documents already in store-return order.

    Ordering is stable, so ties keep store-return order. Documents lacking
    the ``order_by`` field are left out of ordered results.
    """
    filters = list(filters)
    result = [d for d in docs if all(f.matches(d.data) for f in filters)]
    if order_by is not None:
        result = [d for d in result if isinstance(d.data.get(order_by), (int, float))]
        result.sort(key=lambda d: d.data[order_by], reverse=descending)
    if limit is not None:
        result = result[:limit]
    return result


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

DocumentCheck = Callable[[dict[str, Any]], bool]


class WriteBatch(abc.ABC):
    """Writes queued and committed together.

    Preconditions (``create`` on a free key, ``update`` on an existing one,
    optional ``check`` callables) are verified before anything is written.
    """

    @abc.abstractmethod
    def create(self, path: str, data: dict[str, Any]) -> WriteBatch:
        """Write a new document; fails if the path already exists."""

    @abc.abstractmethod
    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> WriteBatch:
        """Write a document, replacing it unless ``merge`` is set."""

    @abc.abstractmethod
    def update(
        self,
        path: str,
        fields: dict[str, Any],
        check: DocumentCheck | None = None,
    ) -> WriteBatch:
        """Apply partial field updates to an existing document."""

    @abc.abstractmethod
    def delete(self, path: str) -> WriteBatch:
        """Delete a document (no error if absent)."""

    @abc.abstractmethod
    async def commit(self) -> None:
        """Verify preconditions and apply every queued write."""


class DocumentStore(abc.ABC):
    """Keyed collections of JSON-like documents."""

    @abc.abstractmethod
    async def get(self, path: str) -> Document | None:
        """Fetch a document, or None if it does not exist."""

    @abc.abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> Document:
        """Create a document under a store-generated id."""

    @abc.abstractmethod
    async def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        """Return matching documents in store order (or ``order_by`` order)."""

    @abc.abstractmethod
    def batch(self) -> WriteBatch:
        """Start a new write batch."""

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        await self.batch().set(path, data, merge=merge).commit()

    async def create(self, path: str, data: dict[str, Any]) -> None:
        await self.batch().create(path, data).commit()

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        await self.batch().update(path, fields).commit()

    async def delete(self, path: str) -> None:
        await self.batch().delete(path).commit()

    async def exists(self, path: str) -> bool:
        return await self.get(path) is not None
