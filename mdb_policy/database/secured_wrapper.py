"""
Policy-enforcing wrappers around Motor databases and collections.

`SecuredMongoWrapper` hands out `SecuredCollectionWrapper` instances, which
intercept data access methods and apply the policy engine:

- Read operations (`find`, `find_one`, `count_documents`) are redacted
  according to the model's field visibility, then filtered with the `read`
  condition.
- Inserts (`insert_one`, `insert_many`) are checked against `create`, one
  document at a time, before anything is written.
- Filtered writes (`update_one`, `update_many`, `delete_one`, `delete_many`)
  are filtered with the `update` / `remove` condition, so documents the
  caller may not touch are simply not matched.
- Document writes (`save`, `remove`) check `create`, `update` or `remove` on
  the document itself.

Everything is skipped while the engine is privileged. Denied document checks
raise `UnauthorizedError`; when the decision itself failed, the failure is
chained as its cause.

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Union

from motor.motor_asyncio import (AsyncIOMotorCollection, AsyncIOMotorCursor,
                                 AsyncIOMotorDatabase)
from pymongo.results import (DeleteResult, InsertManyResult, InsertOneResult,
                             UpdateResult)

from ..constants import (PERMISSION_CREATE, PERMISSION_READ, PERMISSION_REMOVE,
                         PERMISSION_UPDATE)
from ..exceptions import PolicyEngineError, UnauthorizedError
from ..observability import timed_operation
from .query import Query, SortSpec, merge_filters
from .store import Document

if TYPE_CHECKING:
    from ..core.engine import PolicyEngine

logger = logging.getLogger(__name__)

DocumentInput = Union[Document, Mapping[str, Any]]


class SecuredCollectionWrapper:
    """
    Wraps an `AsyncIOMotorCollection` to enforce the policy of one model.

    Unlike Motor's, `find` is a coroutine: the read condition has to be
    resolved before the cursor can be created.
    """

    __slots__ = ("_collection", "_engine", "_model_name")

    def __init__(
        self,
        real_collection: AsyncIOMotorCollection,
        engine: "PolicyEngine",
        model_name: str,
    ):
        self._collection = real_collection
        self._engine = engine
        self._model_name = model_name

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def collection(self) -> AsyncIOMotorCollection:
        """The underlying collection (no policy applied)."""
        return self._collection

    @property
    def _identity_field(self) -> str:
        return self._engine.config.identity_field

    def _timed(self, operation: str):
        return timed_operation(
            f"database.{operation}",
            enabled=self._engine.config.record_metrics,
            collection=self._collection.name,
            model=self._model_name,
        )

    def _as_document(self, document: DocumentInput, persisted: Optional[bool] = None) -> Document:
        if isinstance(document, Document):
            return document
        return Document(
            self._model_name, document, persisted=persisted, identity_field=self._identity_field
        )

    async def _check_document(self, document: Document, permission: str) -> None:
        """
        Raise UnauthorizedError unless `permission` is granted on `document`.
        """
        if self._engine.is_privileged():
            return
        try:
            granted = await self._engine.ask_permission(document, permission)
        except PolicyEngineError as e:
            logger.warning(
                f"Permission check '{permission}' on {self._model_name}[{document.identity}] "
                f"failed: {e}"
            )
            raise UnauthorizedError(document, permission, cause=e) from e
        if not granted:
            logger.info(
                f"Denied '{permission}' on {self._model_name}[{document.identity}]"
            )
            raise UnauthorizedError(document, permission)

    async def _inject_filter(
        self, filter: Optional[Mapping[str, Any]], permission: str
    ) -> Dict[str, Any]:
        """Combines the caller's filter with the permission's condition."""
        if self._engine.is_privileged():
            return dict(filter or {})
        condition = await self._engine.get_condition(self._model_name, permission)
        return merge_filters(filter, condition)

    async def _prepare_read(
        self,
        filter: Optional[Mapping[str, Any]],
        projection: Any = None,
        sort: SortSpec = None,
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Redact a read and merge the read condition into its filter."""
        query = Query(filter, projection, sort)
        if self._engine.is_privileged():
            return query.filter, query.find_kwargs()

        await self._engine.redact_query(self._model_name, query)
        read_filter = await self._engine.filter_for_read(self._model_name)
        return merge_filters(query.filter, read_filter), query.find_kwargs()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Any = None,
        sort: SortSpec = None,
        **kwargs: Any,
    ) -> AsyncIOMotorCursor:
        """
        Redacts the query and applies the read condition.
        Returns Motor's async cursor.
        """
        with self._timed("find"):
            secured_filter, find_kwargs = await self._prepare_read(filter, projection, sort)
        return self._collection.find(secured_filter, **find_kwargs, **kwargs)

    async def find_one(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Any = None,
        sort: SortSpec = None,
        **kwargs: Any,
    ) -> Optional[Dict[str, Any]]:
        """Redacts the query and applies the read condition."""
        with self._timed("find_one"):
            secured_filter, find_kwargs = await self._prepare_read(filter, projection, sort)
            return await self._collection.find_one(secured_filter, **find_kwargs, **kwargs)

    async def count_documents(
        self, filter: Optional[Mapping[str, Any]] = None, **kwargs: Any
    ) -> int:
        """
        Applies the read condition to the count.
        Hidden fields cannot be used to narrow the count.
        """
        with self._timed("count_documents"):
            secured_filter, _ = await self._prepare_read(filter)
            return await self._collection.count_documents(secured_filter, **kwargs)

    # ------------------------------------------------------------------
    # Inserts
    # ------------------------------------------------------------------

    async def insert_one(self, document: DocumentInput, **kwargs: Any) -> InsertOneResult:
        """
        Checks `create` on the document before writing.

        A `Document` passed in is marked persisted with its new identity.
        """
        with self._timed("insert_one"):
            doc = self._as_document(document, persisted=False)
            await self._check_document(doc, PERMISSION_CREATE)
            result = await self._collection.insert_one(doc.data, **kwargs)
            if isinstance(document, Document):
                document.mark_persisted(result.inserted_id)
            return result

    async def insert_many(
        self, documents: List[DocumentInput], **kwargs: Any
    ) -> InsertManyResult:
        """
        Checks `create` on every document; nothing is written unless all of
        them are granted.
        """
        with self._timed("insert_many"):
            docs = [self._as_document(document, persisted=False) for document in documents]
            for doc in docs:
                await self._check_document(doc, PERMISSION_CREATE)
            result = await self._collection.insert_many([doc.data for doc in docs], **kwargs)
            for document, identity in zip(documents, result.inserted_ids):
                if isinstance(document, Document):
                    document.mark_persisted(identity)
            return result

    # ------------------------------------------------------------------
    # Filtered writes
    # ------------------------------------------------------------------

    async def update_one(
        self, filter: Mapping[str, Any], update: Mapping[str, Any], **kwargs: Any
    ) -> UpdateResult:
        """
        Applies the update condition to the filter.
        Note: This only constrains the *filter*, not the update operation.
        """
        with self._timed("update_one"):
            secured_filter = await self._inject_filter(filter, PERMISSION_UPDATE)
            return await self._collection.update_one(secured_filter, update, **kwargs)

    async def update_many(
        self, filter: Mapping[str, Any], update: Mapping[str, Any], **kwargs: Any
    ) -> UpdateResult:
        """
        Applies the update condition to the filter.
        Note: This only constrains the *filter*, not the update operation.
        """
        with self._timed("update_many"):
            secured_filter = await self._inject_filter(filter, PERMISSION_UPDATE)
            return await self._collection.update_many(secured_filter, update, **kwargs)

    async def delete_one(self, filter: Mapping[str, Any], **kwargs: Any) -> DeleteResult:
        """Applies the remove condition to the filter."""
        with self._timed("delete_one"):
            secured_filter = await self._inject_filter(filter, PERMISSION_REMOVE)
            return await self._collection.delete_one(secured_filter, **kwargs)

    async def delete_many(self, filter: Mapping[str, Any], **kwargs: Any) -> DeleteResult:
        """Applies the remove condition to the filter."""
        with self._timed("delete_many"):
            secured_filter = await self._inject_filter(filter, PERMISSION_REMOVE)
            return await self._collection.delete_many(secured_filter, **kwargs)

    # ------------------------------------------------------------------
    # Document writes
    # ------------------------------------------------------------------

    async def save(self, document: DocumentInput, **kwargs: Any) -> Union[InsertOneResult, UpdateResult]:
        """
        Insert a new document or replace a persisted one.

        Checks `create` for new documents and `update` for persisted ones,
        against the stored version of the document.
        """
        doc = self._as_document(document)
        if not doc.is_persisted:
            return await self.insert_one(document, **kwargs)

        with self._timed("save"):
            await self._check_document(doc, PERMISSION_UPDATE)
            return await self._collection.replace_one(
                {self._identity_field: doc.identity}, doc.data, **kwargs
            )

    async def remove(self, document: DocumentInput, **kwargs: Any) -> DeleteResult:
        """Checks `remove` on the document, then deletes it by identity."""
        with self._timed("remove"):
            doc = self._as_document(document)
            await self._check_document(doc, PERMISSION_REMOVE)
            return await self._collection.delete_one(
                {self._identity_field: doc.identity}, **kwargs
            )

    async def can_read(self, document: DocumentInput) -> bool:
        """Whether the current caller may read `document`."""
        return await self._engine.ask_permission(self._as_document(document), PERMISSION_READ)

    def __repr__(self) -> str:
        return (
            f"SecuredCollectionWrapper(collection={self._collection.name!r}, "
            f"model_name={self._model_name!r})"
        )


class SecuredMongoWrapper:
    """
    Wraps an `AsyncIOMotorDatabase` to provide policy-checked collection access.

    When a collection attribute is accessed (e.g., `db.activities`), this
    class returns a `SecuredCollectionWrapper` for that collection, bound to
    the model named by `collections` (collection name -> model name) or, if
    unmapped, to the model named like the collection.

    Wrappers are cached per collection name.
    """

    __slots__ = ("_db", "_engine", "_collections", "_wrapper_cache")

    def __init__(
        self,
        real_db: AsyncIOMotorDatabase,
        engine: "PolicyEngine",
        collections: Optional[Mapping[str, str]] = None,
    ):
        self._db = real_db
        self._engine = engine
        self._collections = dict(collections or {})
        self._wrapper_cache: Dict[str, SecuredCollectionWrapper] = {}

    @property
    def database(self) -> AsyncIOMotorDatabase:
        """
        Access the underlying AsyncIOMotorDatabase (no policy applied).

        Prefer `engine.run_privileged_async` for trusted operations; this is
        meant for administrative work such as index management.
        """
        return self._db

    @property
    def engine(self) -> "PolicyEngine":
        return self._engine

    def model_name_for(self, collection_name: str) -> str:
        return self._collections.get(collection_name, collection_name)

    def __getattr__(self, name: str) -> SecuredCollectionWrapper:
        """
        Proxies attribute access to the underlying database.

        If `name` is a collection, returns a `SecuredCollectionWrapper`.
        """
        # Prevent proxying private/special attributes
        if name.startswith("_"):
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'. "
                "Access to private attributes is blocked."
            )
        return self.get_collection(name)

    def get_collection(self, name: str) -> SecuredCollectionWrapper:
        """
        Get a collection by name (Motor-like API).

        Raises:
            AttributeError: If `name` does not resolve to a Motor collection
        """
        if name in self._wrapper_cache:
            return self._wrapper_cache[name]

        real_collection = self._db[name]

        # Ensure we are actually wrapping a collection object
        if not isinstance(real_collection, AsyncIOMotorCollection):
            raise AttributeError(
                f"'{name}' is not an AsyncIOMotorCollection. SecuredMongoWrapper can "
                f"only proxy collections (found {type(real_collection)})."
            )

        wrapper = SecuredCollectionWrapper(
            real_collection=real_collection,
            engine=self._engine,
            model_name=self.model_name_for(name),
        )
        self._wrapper_cache[name] = wrapper
        return wrapper

    def __getitem__(self, name: str) -> SecuredCollectionWrapper:
        """Support bracket notation for collection access (e.g., db["activities"])."""
        return self.get_collection(name)
