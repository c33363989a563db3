"""Shared FastAPI dependencies."""

from rideon.config import get_settings
from rideon.redis_client import get_redis
from rideon.store import RedisDocumentStore


def get_store() -> RedisDocumentStore:
    """Document store bound to the shared Redis pool (FastAPI dependency)."""
    return RedisDocumentStore(get_redis(), commit_retries=get_settings().store_commit_retries)
