"""Document store interface and its Redis implementation."""

from rideon.store.base import (
    SERVER_TIMESTAMP,
    ArrayUnion,
    BatchCommitError,
    Document,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    Filter,
    Increment,
    PreconditionFailedError,
    StoreError,
    WriteBatch,
    doc_path,
    split_path,
)
from rideon.store.redis_store import RedisDocumentStore

__all__ = [
    "SERVER_TIMESTAMP",
    "ArrayUnion",
    "BatchCommitError",
    "Document",
    "DocumentExistsError",
    "DocumentNotFoundError",
    "DocumentStore",
    "Filter",
    "Increment",
    "PreconditionFailedError",
    "RedisDocumentStore",
    "StoreError",
    "WriteBatch",
    "doc_path",
    "split_path",
]
