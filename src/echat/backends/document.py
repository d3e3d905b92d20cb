"""
Document-store driver for the cn region (Redis).

Layout per collection:

* ``{prefix}:doc:{collection}:{id}``: hash, one JSON-encoded value per field
* ``{prefix}:idx:{collection}``: set of document ids

Queries load the collection's documents and evaluate filters in process, which
suits the small per-user collections this service keeps. Integer fields are
stored as bare JSON numbers so ``HINCRBY`` applies to them directly.

Writes that depend on whether a document exists run as ``WATCH``/``MULTI``
transactions, so inserting an existing id fails the way a primary key would.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as redis
import structlog
from redis.asyncio.client import Pipeline
from redis.exceptions import RedisError, WatchError

from echat.backends.base import BackendClient, Document, new_id
from echat.backends.filters import Filter, Order, matches
from echat.errors import StorageError
from echat.region.models import Region

logger = structlog.get_logger()

_MAX_WATCH_RETRIES = 16

_DATETIME_TAG = "$dt"


def _dumps(value: Any) -> str:  # noqa: ANN401
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return json.dumps({_DATETIME_TAG: value.astimezone(UTC).isoformat(timespec="microseconds")})
    return json.dumps(value, default=str)


def _loads(raw: str) -> Any:  # noqa: ANN401
    value = json.loads(raw)
    if isinstance(value, dict) and len(value) == 1 and _DATETIME_TAG in value:
        return datetime.fromisoformat(value[_DATETIME_TAG])
    return value


def _normalize(value: Any) -> Any:  # noqa: ANN401
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _sorted(docs: list[Document], order: Order) -> list[Document]:
    present = [doc for doc in docs if doc.get(order.field) is not None]
    missing = [doc for doc in docs if doc.get(order.field) is None]
    present.sort(key=lambda doc: doc[order.field], reverse=order.descending)
    return present + missing


class DocumentBackend(BackendClient):
    """BackendClient over Redis hashes."""

    region = Region.CN
    driver_errors = (RedisError, OSError)

    def __init__(self, client: redis.Redis, prefix: str = "echat", timeout: float = 5.0) -> None:
        super().__init__(timeout=timeout)
        self.redis = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "echat", timeout: float = 5.0) -> DocumentBackend:
        client = redis.from_url(  # type: ignore[no-untyped-call]
            url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
        return cls(client, prefix=prefix, timeout=timeout)

    def _doc_key(self, collection: str, doc_id: str) -> str:
        return f"{self.prefix}:doc:{collection}:{doc_id}"

    def _index_key(self, collection: str) -> str:
        return f"{self.prefix}:idx:{collection}"

    @staticmethod
    def _decode(raw: Mapping[str, str]) -> Document:
        return {field: _loads(value) for field, value in raw.items()}

    @staticmethod
    def _encode(doc: Mapping[str, Any]) -> dict[str, str]:
        return {field: _dumps(value) for field, value in doc.items()}

    async def get(self, collection: str, doc_id: str) -> Document | None:
        async with self._guard("get", collection):
            raw = await self.redis.hgetall(self._doc_key(collection, doc_id))
        return self._decode(raw) if raw else None

    async def query(
        self,
        collection: str,
        filter_: Filter = None,
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        async with self._guard("query", collection):
            ids = sorted(await self.redis.smembers(self._index_key(collection)))
            if not ids:
                return []
            async with self.redis.pipeline(transaction=False) as pipe:
                for doc_id in ids:
                    pipe.hgetall(self._doc_key(collection, doc_id))
                raws = await pipe.execute()

        docs = [self._decode(raw) for raw in raws if raw]
        docs = [doc for doc in docs if matches(doc, filter_, encode=_normalize)]
        if order is not None:
            docs = _sorted(docs, order)
        if limit is not None:
            docs = docs[:limit]
        return docs

    async def _transact(
        self,
        key: str,
        must_exist: bool,
        queue: Callable[[Pipeline], None],
    ) -> list[Any] | None:
        """Run the commands ``queue`` adds in one MULTI, guarded by WATCH on ``key``.

        Returns None without writing when the key's existence differs from
        ``must_exist``. A write that races the check is retried.
        """
        for _ in range(_MAX_WATCH_RETRIES):
            async with self.redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    if bool(await pipe.exists(key)) != must_exist:
                        return None
                    pipe.multi()
                    queue(pipe)
                    return await pipe.execute()
                except WatchError:
                    logger.debug("storage_watch_retry", key=key)
        msg = f"Too many concurrent writes to {key}"
        raise StorageError(msg)

    async def insert(self, collection: str, doc: Mapping[str, Any]) -> Document:
        stored = {key: _normalize(value) for key, value in doc.items()}
        stored.setdefault("id", new_id())
        doc_id = str(stored["id"])
        key = self._doc_key(collection, doc_id)
        index = self._index_key(collection)

        def queue(pipe: Pipeline) -> None:
            pipe.hset(key, mapping=self._encode(stored))
            pipe.sadd(index, doc_id)

        async with self._guard("insert", collection):
            written = await self._transact(key, False, queue)
        if written is None:
            msg = f"Document {doc_id} already exists in {collection}"
            raise StorageError(msg)
        return stored

    async def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> Document | None:
        values = {key: _normalize(value) for key, value in patch.items() if key != "id"}
        key = self._doc_key(collection, doc_id)

        def queue(pipe: Pipeline) -> None:
            if values:
                pipe.hset(key, mapping=self._encode(values))
            pipe.hgetall(key)

        async with self._guard("update", collection):
            results = await self._transact(key, True, queue)
        if results is None:
            return None
        raw = results[-1]
        return self._decode(raw) if raw else None

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._guard("delete", collection):
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.delete(self._doc_key(collection, doc_id))
                pipe.srem(self._index_key(collection), doc_id)
                removed, _ = await pipe.execute()
        return bool(removed)

    async def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> int | None:
        key = self._doc_key(collection, doc_id)
        async with self._guard("increment", collection):
            results = await self._transact(key, True, lambda pipe: pipe.hincrby(key, field, amount))
        return int(results[-1]) if results is not None else None

    async def ping(self) -> None:
        async with self._guard("ping", "*"):
            await self.redis.ping()

    async def close(self) -> None:
        await self.redis.aclose()
        logger.info("storage_closed", region=self.region.value)
