"""Redis-backed document store.

Each document is a Redis hash ``doc:<collection>:<id>`` whose field values
are JSON-encoded, so numeric fields can be bumped in place with
``HINCRBYFLOAT``. Three kinds of sorted set index a collection:

    idx:<collection>                       ids scored by creation time
    idx:<collection>:by:<field>            ids scored by a numeric field
    idx:<collection>:eq:<field>:<value>    ids with that value, by creation time

The first gives queries a stable store-return order, the second serves
ordered queries a window at a time, and the third (only for the fields in
``EQUALITY_INDEXES``) serves equality filters without a collection scan.

A batch is applied by one Lua script, so existence preconditions, field
operations and index upkeep happen atomically on the server. Only ops with
a ``check`` callable are read client-side; their keys are WATCHed and a
concurrent write to any of them restarts the attempt. A write that fails
inside the script does not undo the ones before it, so a partial failure
is reported with the paths that were applied.
"""

from __future__ import annotations

import json
import math
import time
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.commands.core import AsyncScript
from redis.exceptions import RedisError, WatchError

from rideon.store.base import (
    SERVER_TIMESTAMP,
    ArrayUnion,
    BatchCommitError,
    Document,
    DocumentCheck,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    Filter,
    Increment,
    PreconditionFailedError,
    StoreError,
    WriteBatch,
    apply_query,
    doc_path,
    split_path,
)
from rideon.store.collections import EQUALITY_INDEXES

logger = structlog.get_logger()

# Marker field so that documents without user fields still exist as hashes.
_PRESENCE_FIELD = "__doc__"

# KEYS[i] is the document hash of op i; ARGV[1] is the JSON-encoded op list.
# Replies {"exists", i} or {"missing", i} before writing anything when a
# precondition fails, otherwise {"applied", i, err, ...} listing failed ops.
APPLY_BATCH_SCRIPT = """
local PRESENCE = '__doc__'
local unpack = table.unpack or unpack
local ops = cjson.decode(ARGV[1])

local function call(...)
    local reply = redis.pcall(...)
    if type(reply) == 'table' and reply.err then
        error(tostring(reply.err), 0)
    end
    return reply
end

local function to_map(flat)
    local map = {}
    for j = 1, #flat, 2 do
        map[flat[j]] = flat[j + 1]
    end
    return map
end

local function is_score(raw)
    local n = tonumber(raw)
    return n ~= nil and n == n and n ~= math.huge and n ~= -math.huge
end

local function same(a, b)
    if type(a) == 'table' or type(b) == 'table' then
        return type(a) == type(b) and cjson.encode(a) == cjson.encode(b)
    end
    return a == b
end

local function union(raw, items)
    local merged = {}
    if raw then
        local ok, existing = pcall(cjson.decode, raw)
        if ok and type(existing) == 'table' then
            merged = existing
        end
    end
    for _, item in ipairs(items) do
        local present = false
        for _, value in ipairs(merged) do
            if same(value, item) then
                present = true
                break
            end
        end
        if not present then
            merged[#merged + 1] = item
        end
    end
    if #merged == 0 then
        return '[]'
    end
    return cjson.encode(merged)
end

local function reindex(op, old, new, created)
    local prefix = 'idx:' .. op.coll
    for field, raw in pairs(old) do
        if field ~= PRESENCE and is_score(raw) and not (new[field] and is_score(new[field])) then
            call('ZREM', prefix .. ':by:' .. field, op.id)
        end
    end
    for field, raw in pairs(new) do
        if field ~= PRESENCE and is_score(raw) then
            call('ZADD', prefix .. ':by:' .. field, raw, op.id)
        end
    end
    for _, field in ipairs(op.eq) do
        local before, after = old[field], new[field]
        if before ~= after then
            if before then
                call('ZREM', prefix .. ':eq:' .. field .. ':' .. before, op.id)
            end
            if after then
                call('ZADD', prefix .. ':eq:' .. field .. ':' .. after, created, op.id)
            end
        end
    end
end

local function apply(i, op)
    local key = KEYS[i]
    local index = 'idx:' .. op.coll
    local old = to_map(call('HGETALL', key))
    if op.kind == 'delete' then
        call('DEL', key)
        call('ZREM', index, op.id)
        reindex(op, old, {}, false)
        return
    end
    local base = old
    if op.replace then
        call('DEL', key)
        base = {}
    end
    local args = {PRESENCE, '1'}
    for field, raw in pairs(op.fields) do
        args[#args + 1] = field
        args[#args + 1] = raw
    end
    for field, items in pairs(op.union) do
        args[#args + 1] = field
        args[#args + 1] = union(base[field], items)
    end
    call('HSET', key, unpack(args))
    for field, amount in pairs(op.incr) do
        call('HINCRBYFLOAT', key, field, amount)
    end
    call('ZADD', index, 'NX', op.score, op.id)
    reindex(op, old, to_map(call('HGETALL', key)), call('ZSCORE', index, op.id))
end

for i, op in ipairs(ops) do
    local exists = redis.call('EXISTS', KEYS[i]) == 1
    if op.kind == 'create' and exists then
        return {'exists', i}
    end
    if op.kind == 'update' and not exists then
        return {'missing', i}
    end
end

local reply = {'applied'}
for i, op in ipairs(ops) do
    local ok, err = pcall(apply, i, op)
    if not ok then
        reply[#reply + 1] = i
        reply[#reply + 1] = tostring(err)
    end
end
return reply
"""


def doc_key(path: str) -> str:
    """Redis hash key for a document path."""
    collection, doc_id = split_path(path)
    return f"doc:{collection}:{doc_id}"


def index_key(collection: str) -> str:
    """Redis sorted set key listing a collection's document ids."""
    return f"idx:{collection}"


def order_key(collection: str, field: str) -> str:
    """Sorted set of ids scored by a numeric field."""
    return f"idx:{collection}:by:{field}"


def equality_key(collection: str, field: str, value: Any) -> str:  # noqa: ANN401
    """Sorted set of ids whose ``field`` equals ``value``."""
    return f"idx:{collection}:eq:{field}:{encode_value(value)}"


def _json_default(value: Any) -> Any:  # noqa: ANN401
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def encode_value(value: Any) -> str:  # noqa: ANN401
    return json.dumps(value, default=_json_default)


def decode_value(raw: str) -> Any:  # noqa: ANN401
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def decode_hash(raw: dict[str, str]) -> dict[str, Any] | None:
    """Decode a Redis hash into document fields; None when the hash is empty."""
    if not raw:
        return None
    return {k: decode_value(v) for k, v in raw.items() if k != _PRESENCE_FIELD}


def _server_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _creation_score() -> int:
    return time.time_ns() // 1000


@dataclass
class _Op:
    kind: str  # create | set | update | delete
    path: str
    data: dict[str, Any]
    merge: bool = False
    check: DocumentCheck | None = None

    @property
    def writes_new_document(self) -> bool:
        return self.kind in ("create", "set")


class RedisWriteBatch(WriteBatch):
    """Write batch applied by one server-side script."""

    def __init__(
        self,
        redis: Redis,
        script: AsyncScript,
        equality_indexes: Mapping[str, Iterable[str]],
        retries: int = 5,
    ) -> None:
        self._redis = redis
        self._script = script
        self._equality_indexes = equality_indexes
        self._retries = max(1, retries)
        self._ops: list[_Op] = []

    def create(self, path: str, data: dict[str, Any]) -> RedisWriteBatch:
        split_path(path)
        self._ops.append(_Op("create", path, dict(data)))
        return self

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> RedisWriteBatch:
        split_path(path)
        self._ops.append(_Op("set", path, dict(data), merge=merge))
        return self

    def update(
        self,
        path: str,
        fields: dict[str, Any],
        check: DocumentCheck | None = None,
    ) -> RedisWriteBatch:
        split_path(path)
        self._ops.append(_Op("update", path, dict(fields), merge=True, check=check))
        return self

    def delete(self, path: str) -> RedisWriteBatch:
        split_path(path)
        self._ops.append(_Op("delete", path, {}))
        return self

    @property
    def paths(self) -> list[str]:
        return [op.path for op in self._ops]

    async def commit(self) -> None:
        if not self._ops:
            return

        keys = [doc_key(op.path) for op in self._ops]
        payload = json.dumps([self._encode(op) for op in self._ops], default=_json_default)
        checked = [op for op in self._ops if op.check is not None]
        watch_keys = sorted({doc_key(op.path) for op in checked})

        for attempt in range(1, self._retries + 1):
            sent = False
            try:
                async with self._redis.pipeline(transaction=True) as pipe:
                    if watch_keys:
                        await pipe.watch(*watch_keys)
                        for op in checked:
                            self._verify(op, decode_hash(await pipe.hgetall(doc_key(op.path))))

                    pipe.multi()
                    await self._script(keys=keys, args=[payload], client=pipe)
                    sent = True
                    results = await pipe.execute(raise_on_error=False)
            except WatchError:
                logger.info("store_batch_contention", attempt=attempt, paths=self.paths)
                continue
            except StoreError:
                raise
            except RedisError as exc:
                if not sent:
                    msg = f"Store unavailable: {exc}"
                    raise StoreError(msg) from exc
                # Outcome unknown: anything may have been applied.
                raise BatchCommitError(
                    f"Batch commit interrupted: {exc}",
                    applied=[op.path for op in self._ops if op.writes_new_document],
                    failed=self.paths,
                ) from exc

            reply = results[0]
            if isinstance(reply, Exception):
                msg = f"Batch rejected: {reply}"
                raise StoreError(msg, self._ops[0].path) from reply
            self._raise_on_failure(reply)
            return

        msg = "Batch aborted after repeated concurrent modification"
        raise StoreError(msg, checked[0].path)

    def _encode(self, op: _Op) -> dict[str, Any]:
        """Script arguments for one op; field values are pre-encoded JSON."""
        collection, doc_id = split_path(op.path)
        fields: dict[str, str] = {}
        increments: dict[str, str] = {}
        unions: dict[str, list[Any]] = {}
        for name, value in op.data.items():
            if value is SERVER_TIMESTAMP:
                fields[name] = encode_value(_server_timestamp())
            elif isinstance(value, Increment):
                if op.merge:
                    increments[name] = str(value.amount)
                else:
                    fields[name] = encode_value(value.amount)
            elif isinstance(value, ArrayUnion):
                unions[name] = list(value.values)
            else:
                fields[name] = encode_value(value)
        return {
            "kind": op.kind,
            "coll": collection,
            "id": doc_id,
            "replace": not op.merge,
            "score": str(_creation_score()),
            "fields": fields,
            "incr": increments,
            "union": unions,
            "eq": list(self._equality_indexes.get(collection, ())),
        }

    @staticmethod
    def _verify(op: _Op, doc: dict[str, Any] | None) -> None:
        if doc is None:
            msg = f"No document to update: {op.path}"
            raise DocumentNotFoundError(msg, op.path)
        if op.check is not None and not op.check(doc):
            msg = f"Precondition failed: {op.path}"
            raise PreconditionFailedError(msg, op.path)

    def _raise_on_failure(self, reply: list[Any]) -> None:
        outcome = reply[0]
        if outcome == "exists":
            path = self._ops[int(reply[1]) - 1].path
            msg = f"Document already exists: {path}"
            raise DocumentExistsError(msg, path)
        if outcome == "missing":
            path = self._ops[int(reply[1]) - 1].path
            msg = f"No document to update: {path}"
            raise DocumentNotFoundError(msg, path)

        errors = {int(i) - 1: str(err) for i, err in zip(reply[1::2], reply[2::2])}
        if errors:
            raise BatchCommitError(
                f"Batch partially failed: {'; '.join(errors.values())}",
                applied=[op.path for i, op in enumerate(self._ops) if i not in errors],
                failed=[self._ops[i].path for i in sorted(errors)],
            )


class RedisDocumentStore(DocumentStore):
    """Document store on top of a ``redis.asyncio`` client (decode_responses=True)."""

    def __init__(
        self,
        redis: Redis,
        commit_retries: int = 5,
        equality_indexes: Mapping[str, Iterable[str]] | None = None,
        page_size: int = 100,
    ) -> None:
        self._redis = redis
        self._commit_retries = commit_retries
        self._equality_indexes = EQUALITY_INDEXES if equality_indexes is None else equality_indexes
        self._page_size = max(1, page_size)
        self._apply_batch = redis.register_script(APPLY_BATCH_SCRIPT)

    def batch(self) -> RedisWriteBatch:
        return RedisWriteBatch(
            self._redis, self._apply_batch, self._equality_indexes, retries=self._commit_retries,
        )

    async def get(self, path: str) -> Document | None:
        collection, doc_id = split_path(path)
        try:
            data = decode_hash(await self._redis.hgetall(doc_key(path)))
        except RedisError as exc:
            msg = f"Store unavailable: {exc}"
            raise StoreError(msg, path) from exc
        if data is None:
            return None
        return Document(collection=collection, id=doc_id, data=data)

    async def add(self, collection: str, data: dict[str, Any]) -> Document:
        doc_id = uuid.uuid4().hex
        path = doc_path(collection, doc_id)
        await self.create(path, data)
        return Document(collection=collection, id=doc_id, data=dict(data))

    async def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        filters = list(filters)
        if limit is not None and limit <= 0:
            return []
        indexed = next(
            (f for f in filters if f.op == "==" and f.field in self._equality_indexes.get(collection, ())),
            None,
        )
        try:
            if indexed is not None:
                key = equality_key(collection, indexed.field, indexed.value)
                if order_by is not None:
                    docs = await self._scan(collection, key, filters, None)
                    return apply_query(docs, order_by=order_by, descending=descending, limit=limit)
                return await self._scan(collection, key, filters, limit)
            if order_by is not None:
                return await self._ordered(collection, filters, order_by, descending, limit)
            return await self._scan(collection, index_key(collection), filters, limit)
        except RedisError as exc:
            msg = f"Store unavailable: {exc}"
            raise StoreError(msg, collection) from exc

    async def _load(self, collection: str, ids: list[str]) -> list[Document]:
        pipe = self._redis.pipeline(transaction=False)
        for doc_id in ids:
            pipe.hgetall(doc_key(doc_path(collection, doc_id)))
        raw_docs = await pipe.execute()
        docs = []
        for doc_id, raw in zip(ids, raw_docs):
            data = decode_hash(raw)
            if data is not None:
                docs.append(Document(collection=collection, id=doc_id, data=data))
        return docs

    async def _scan(
        self, collection: str, key: str, filters: list[Filter], limit: int | None,
    ) -> list[Document]:
        """Walk a creation-ordered index a page at a time until ``limit`` matches."""
        page_size = limit or self._page_size
        matched: list[Document] = []
        start = 0
        while True:
            ids = await self._redis.zrange(key, start, start + page_size - 1)
            if not ids:
                break
            start += len(ids)
            matched.extend(apply_query(await self._load(collection, ids), filters))
            if limit is not None and len(matched) >= limit:
                return matched[:limit]
            if len(ids) < page_size:
                break
        return matched

    async def _ordered(
        self,
        collection: str,
        filters: list[Filter],
        order_by: str,
        descending: bool,
        limit: int | None,
    ) -> list[Document]:
        """Walk a field index until ``limit`` matches, then read the rest of the last tie."""
        key = order_key(collection, order_by)
        page_size = limit or self._page_size
        matched: list[Document] = []
        scores: dict[str, float] = {}
        start = 0
        while True:
            end = start + page_size - 1
            if descending:
                page = await self._redis.zrevrange(key, start, end, withscores=True)
            else:
                page = await self._redis.zrange(key, start, end, withscores=True)
            if not page:
                break
            start += len(page)
            scores.update(page)
            matched.extend(apply_query(await self._load(collection, [member for member, _ in page]), filters))
            if limit is not None and len(matched) >= limit:
                boundary = scores[matched[limit - 1].id]
                ties = [m for m in await self._redis.zrangebyscore(key, boundary, boundary) if m not in scores]
                if ties:
                    matched.extend(apply_query(await self._load(collection, ties), filters))
                break
            if len(page) < page_size:
                break

        # Equal scores come back in member order; ties keep creation order instead.
        pipe = self._redis.pipeline(transaction=False)
        for doc in matched:
            pipe.zscore(index_key(collection), doc.id)
        created = await pipe.execute()
        rows = sorted(zip(created, matched), key=lambda row: math.inf if row[0] is None else row[0])
        return apply_query([doc for _, doc in rows], order_by=order_by, descending=descending, limit=limit)
