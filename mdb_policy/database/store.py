"""
Persistence adapter.

The policy engine needs very little from the persistence layer: a way to
find documents of a model by filter (to re-validate one document against an
aggregated condition) and, for document targets, their model name, identity
and whether they were persisted yet. This module provides those on top of
Motor.

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import abc
import logging
from collections.abc import Iterator, Mapping
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import (AutoReconnect, ConnectionFailure, InvalidOperation,
                            OperationFailure, ServerSelectionTimeoutError)

from ..config import PolicyConfig
from ..constants import DEFAULT_IDENTITY_FIELD, DEFAULT_STORE_MATCH_LIMIT
from ..core.types import DocumentHandle, FilterTree
from ..exceptions import PolicyEngineError

logger = logging.getLogger(__name__)


class Document(DocumentHandle, Mapping):
    """
    Read-only view of a MongoDB document tagged with its model name.

    `is_persisted` defaults to whether the data carries an identity; pass
    `persisted=False` for documents that were given an `_id` client-side but
    not inserted yet.
    """

    __slots__ = ("_model_name", "_data", "_persisted", "_identity_field")

    def __init__(
        self,
        model_name: str,
        data: Optional[Mapping[str, Any]] = None,
        persisted: Optional[bool] = None,
        identity_field: str = DEFAULT_IDENTITY_FIELD,
    ) -> None:
        self._model_name = model_name
        self._data: Dict[str, Any] = dict(data or {})
        self._identity_field = identity_field
        self._persisted = (identity_field in self._data) if persisted is None else persisted

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def is_persisted(self) -> bool:
        return self._persisted

    @property
    def identity(self) -> Any:
        return self._data.get(self._identity_field)

    @property
    def data(self) -> Dict[str, Any]:
        """Shallow copy of the document fields."""
        return dict(self._data)

    def mark_persisted(self, identity: Any = None) -> None:
        """Record that the document was written, optionally with its new identity."""
        if identity is not None:
            self._data[self._identity_field] = identity
        self._persisted = True

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return (
            f"Document(model_name={self._model_name!r}, identity={self.identity!r}, "
            f"persisted={self._persisted})"
        )


class DocumentStore(abc.ABC):
    """Lookup contract the DocumentDomain relies on."""

    @abc.abstractmethod
    async def find_by_filter(self, model_name: str, filter: FilterTree) -> List[Any]:
        """
        Return documents of `model_name` matching `filter`.

        Implementations may cap the number of results, but must return at
        least two when two or more documents match.
        """


class MotorDocumentStore(DocumentStore):
    """
    DocumentStore backed by an `AsyncIOMotorDatabase`.

    Model names map to collections through `collections` (model name ->
    collection name); unmapped models use their own name as collection name.
    Only identities are fetched.
    """

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        collections: Optional[Mapping[str, str]] = None,
        limit: int = DEFAULT_STORE_MATCH_LIMIT,
        identity_field: str = DEFAULT_IDENTITY_FIELD,
    ) -> None:
        self._database = database
        self._collections = dict(collections or {})
        self._limit = limit
        self._identity_field = identity_field

    @classmethod
    def from_config(
        cls,
        database: AsyncIOMotorDatabase,
        config: PolicyConfig,
        collections: Optional[Mapping[str, str]] = None,
    ) -> "MotorDocumentStore":
        """Create a store using the match limit and identity field of `config`."""
        return cls(
            database,
            collections=collections,
            limit=config.store_match_limit,
            identity_field=config.identity_field,
        )

    def collection_name(self, model_name: str) -> str:
        return self._collections.get(model_name, model_name)

    async def find_by_filter(self, model_name: str, filter: FilterTree) -> List[Any]:
        collection_name = self.collection_name(model_name)
        collection = self._database[collection_name]
        try:
            cursor = collection.find(filter, projection={self._identity_field: 1})
            return await cursor.to_list(length=self._limit)
        except (OperationFailure, AutoReconnect) as e:
            logger.exception(f"Database operation failed in find_by_filter for '{model_name}'")
            raise PolicyEngineError(
                f"Failed to look up documents of model '{model_name}'",
                context={"operation": "find_by_filter", "collection": collection_name},
            ) from e
        except (ConnectionFailure, ServerSelectionTimeoutError, InvalidOperation) as e:
            logger.exception(f"Connection error in find_by_filter for '{model_name}'")
            raise PolicyEngineError(
                f"Connection failed while looking up documents of model '{model_name}'",
                context={"operation": "find_by_filter", "collection": collection_name},
            ) from e
