"""
Document store used by the ledger core.

The core is written against four operations only:

    put(collection, fields, id?)                 -> id
    get(collection, id)                          -> fields | NotFoundError
    query(collection, filters)                   -> [fields]
    update_if(collection, id, precondition, patch) -> fields | PreconditionFailed

Single-record atomicity is the strongest guarantee assumed. There is no
multi-record transaction.
"""

import asyncio
import copy
import enum
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from vikoba.app.core.exceptions import (
    DocumentExistsError, NotFoundError, PreconditionFailed, StoreError
)
from vikoba.app.models.document import Document

logger = logging.getLogger("vikoba.store")

Precondition = Callable[[Dict[str, Any]], bool]


def new_document_id() -> str:
    return uuid.uuid4().hex


def _normalize(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    return value


def matches(fields: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    """Equality match of every filter key against the document fields."""
    if not filters:
        return True
    return all(fields.get(key) == _normalize(value) for key, value in filters.items())


class DocumentStore(ABC):
    """Minimal document-store contract."""

    @abstractmethod
    async def put(self, collection: str, fields: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        """Create a document. Raises DocumentExistsError if `doc_id` is taken."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        """Return the document with its `id`. Raises NotFoundError."""

    @abstractmethod
    async def query(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Return every document of the collection matching the equality filters."""

    @abstractmethod
    async def update_if(
        self,
        collection: str,
        doc_id: str,
        precondition: Precondition,
        patch: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Atomically re-read the document, check `precondition` against it and
        merge `patch` into it.

        Raises:
            NotFoundError: The document does not exist
            PreconditionFailed: The precondition is false, or another writer
                changed the document between the read and the write
        """

    async def exists(self, collection: str, doc_id: str) -> bool:
        try:
            await self.get(collection, doc_id)
        except NotFoundError:
            return False
        return True


class SqlDocumentStore(DocumentStore):
    """
    Document store over the `documents` table.

    update_if is an optimistic compare-and-swap on the row version, so two
    sessions racing on the same document cannot both win.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _load(self, collection: str, doc_id: str) -> Document:
        result = await self.session.execute(
            select(Document)
            .where(Document.collection == collection, Document.id == doc_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(collection, doc_id)
        return row

    async def put(self, collection: str, fields: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or new_document_id()
        body = {key: value for key, value in fields.items() if key != "id"}

        self.session.add(Document(
            collection=collection,
            id=doc_id,
            member_id=body.get("member_id"),
            fields=body,
            version=1,
        ))
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DocumentExistsError(collection, doc_id) from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreError(f"Failed to write {collection}/{doc_id}") from exc
        return doc_id

    async def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        try:
            row = await self._load(collection, doc_id)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreError(f"Failed to read {collection}/{doc_id}") from exc
        return {"id": row.id, **row.fields}

    async def query(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = dict(filters or {})
        stmt = select(Document).where(Document.collection == collection)

        # member_id is a real column; everything else is matched on the JSON body
        if "member_id" in filters:
            stmt = stmt.where(Document.member_id == filters.pop("member_id"))

        try:
            result = await self.session.execute(stmt.execution_options(populate_existing=True))
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreError(f"Failed to query {collection}") from exc

        documents = []
        for row in result.scalars().all():
            if matches(row.fields, filters):
                documents.append({"id": row.id, **row.fields})
        return documents

    async def update_if(
        self,
        collection: str,
        doc_id: str,
        precondition: Precondition,
        patch: Dict[str, Any],
    ) -> Dict[str, Any]:
        try:
            row = await self._load(collection, doc_id)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreError(f"Failed to read {collection}/{doc_id}") from exc

        read_version = row.version
        if not precondition({"id": row.id, **row.fields}):
            await self.session.rollback()
            raise PreconditionFailed(collection, doc_id)

        new_fields = {**row.fields, **{key: value for key, value in patch.items() if key != "id"}}
        stmt = (
            update(Document)
            .where(
                Document.collection == collection,
                Document.id == doc_id,
                Document.version == read_version,
            )
            .values(fields=new_fields, member_id=new_fields.get("member_id"), version=read_version + 1)
        )
        try:
            result = await self.session.execute(stmt)
            if result.rowcount == 0:
                await self.session.rollback()
                logger.info("Lost update race on %s/%s at version %s", collection, doc_id, read_version)
                raise PreconditionFailed(collection, doc_id)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreError(f"Failed to update {collection}/{doc_id}") from exc

        return {"id": doc_id, **new_fields}


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed document store for tests and local tooling.

    Every operation yields to the event loop once before touching data, the
    way a network round-trip would, but the check and the write of
    update_if happen without an await in between.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _collection(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    async def put(self, collection: str, fields: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        await asyncio.sleep(0)
        doc_id = doc_id or new_document_id()
        documents = self._collection(collection)
        if doc_id in documents:
            raise DocumentExistsError(collection, doc_id)
        documents[doc_id] = copy.deepcopy({key: value for key, value in fields.items() if key != "id"})
        return doc_id

    async def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        await asyncio.sleep(0)
        documents = self._collection(collection)
        if doc_id not in documents:
            raise NotFoundError(collection, doc_id)
        return {"id": doc_id, **copy.deepcopy(documents[doc_id])}

    async def query(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        return [
            {"id": doc_id, **copy.deepcopy(fields)}
            for doc_id, fields in self._collection(collection).items()
            if matches(fields, filters)
        ]

    async def update_if(
        self,
        collection: str,
        doc_id: str,
        precondition: Precondition,
        patch: Dict[str, Any],
    ) -> Dict[str, Any]:
        await asyncio.sleep(0)
        documents = self._collection(collection)
        if doc_id not in documents:
            raise NotFoundError(collection, doc_id)
        if not precondition({"id": doc_id, **copy.deepcopy(documents[doc_id])}):
            raise PreconditionFailed(collection, doc_id)
        documents[doc_id].update(copy.deepcopy({key: value for key, value in patch.items() if key != "id"}))
        return {"id": doc_id, **copy.deepcopy(documents[doc_id])}
