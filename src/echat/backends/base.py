"""
Backend client contract.

Both region stores expose the same collection-scoped CRUD surface. Business logic
talks only to this interface and never inspects which driver is underneath.
Driver failures and timeouts surface as ``StorageError`` carrying the original
message.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any, ClassVar

import structlog

from echat.backends.filters import Filter, Order
from echat.errors import StorageError
from echat.region.models import Region

logger = structlog.get_logger()

Document = dict[str, Any]


def new_id() -> str:
    """Generate a store-neutral document id."""
    return uuid.uuid4().hex


def pair_id(kind: str, *parts: str) -> str:
    """Stable id for the relation ``kind`` between ``parts``, same width as ``new_id``."""
    return uuid.uuid5(uuid.NAMESPACE_URL, ":".join((kind, *parts))).hex


class BackendClient(ABC):
    """Uniform CRUD handle over one region's store."""

    region: Region
    driver_errors: ClassVar[tuple[type[BaseException], ...]] = ()

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout

    @asynccontextmanager
    async def _guard(self, operation: str, collection: str) -> AsyncIterator[None]:
        """Bound a driver call in time and normalise its failures."""
        try:
            async with asyncio.timeout(self.timeout):
                yield
        except TimeoutError as exc:
            logger.error("storage_timeout", region=self.region.value, operation=operation, collection=collection)
            msg = f"{operation} on {collection} timed out after {self.timeout}s"
            raise StorageError(msg) from exc
        except self.driver_errors as exc:
            logger.error(
                "storage_error",
                region=self.region.value,
                operation=operation,
                collection=collection,
                error=str(exc),
            )
            raise StorageError(str(exc)) from exc

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Fetch one document by id."""
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filter_: Filter = None,
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        """Return documents matching the filter."""
        ...

    @abstractmethod
    async def insert(self, collection: str, doc: Mapping[str, Any]) -> Document:
        """Insert a document, assigning an id when absent. Returns the stored document."""
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> Document | None:
        """Apply a partial update. Returns the updated document, or None if it does not exist."""
        ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns True if something was removed."""
        ...

    @abstractmethod
    async def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> int | None:
        """Atomically add to an integer field. Returns the new value, or None if the document is missing."""
        ...

    @abstractmethod
    async def ping(self) -> None:
        """Raise StorageError if the store is unreachable."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""
        ...

    async def first(self, collection: str, filter_: Filter = None, order: Order | None = None) -> Document | None:
        """Return the first matching document, if any."""
        rows = await self.query(collection, filter_, order=order, limit=1)
        return rows[0] if rows else None

    def collection(self, name: str) -> Collection:
        """Collection-scoped handle."""
        return Collection(self, name)


class Collection:
    """A BackendClient bound to one collection name."""

    def __init__(self, client: BackendClient, name: str) -> None:
        self.client = client
        self.name = name

    async def get(self, doc_id: str) -> Document | None:
        return await self.client.get(self.name, doc_id)

    async def query(
        self, filter_: Filter = None, order: Order | None = None, limit: int | None = None
    ) -> list[Document]:
        return await self.client.query(self.name, filter_, order=order, limit=limit)

    async def first(self, filter_: Filter = None, order: Order | None = None) -> Document | None:
        return await self.client.first(self.name, filter_, order=order)

    async def insert(self, doc: Mapping[str, Any]) -> Document:
        return await self.client.insert(self.name, doc)

    async def update(self, doc_id: str, patch: Mapping[str, Any]) -> Document | None:
        return await self.client.update(self.name, doc_id, patch)

    async def delete(self, doc_id: str) -> bool:
        return await self.client.delete(self.name, doc_id)

    async def increment(self, doc_id: str, field: str, amount: int = 1) -> int | None:
        return await self.client.increment(self.name, doc_id, field, amount)
