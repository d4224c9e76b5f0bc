"""
Type definitions for MDB_POLICY core structures.

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import abc
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Union

# ============================================================================
# Condition Types
# ============================================================================

FilterTree = Dict[str, Any]
"""MongoDB filter document: field -> value or operator subtree."""

FieldVisibility = Dict[str, bool]
"""Field domain condition: field -> readable."""

ConditionValue = Union[bool, FilterTree, FieldVisibility]
"""Anything a domain produces or consumes while aggregating rules."""

ParameterMapping = Dict[str, Any]
"""Parameters available to rule functions and `{{placeholders}}`."""

ModelProvider = Callable[[], Union[Mapping[str, Any], Awaitable[Mapping[str, Any]]]]
"""Zero-argument callable contributing parameters to every evaluation."""


# ============================================================================
# Documents
# ============================================================================


class DocumentHandle(abc.ABC):
    """
    What the engine needs to know about a document instance.

    Implemented by `mdb_policy.database.store.Document`; applications with
    their own document classes can implement it directly.
    """

    @property
    @abc.abstractmethod
    def model_name(self) -> str:
        """Name of the model the document belongs to."""

    @property
    @abc.abstractmethod
    def is_persisted(self) -> bool:
        """Whether the document already exists in the store."""

    @property
    @abc.abstractmethod
    def identity(self) -> Any:
        """Stable identity value of a persisted document."""


# ============================================================================
# Targets
# ============================================================================


@dataclass(frozen=True)
class ModelRef:
    """A permission target given as a bare model name."""

    model_name: str

    @property
    def raw(self) -> str:
        return self.model_name


@dataclass(frozen=True, eq=False)
class DocumentRef:
    """A permission target given as a document instance."""

    document: DocumentHandle

    @property
    def model_name(self) -> str:
        return self.document.model_name

    @property
    def raw(self) -> DocumentHandle:
        return self.document


Target = Union[ModelRef, DocumentRef]


def resolve_target(target: Union[str, DocumentHandle, ModelRef, DocumentRef]) -> Target:
    """
    Turn a model name or a document into a tagged target.

    Raises:
        TypeError: If the target is neither a string nor a DocumentHandle
    """
    if isinstance(target, (ModelRef, DocumentRef)):
        return target
    if isinstance(target, str):
        return ModelRef(target)
    if isinstance(target, DocumentHandle):
        return DocumentRef(target)
    raise TypeError(
        f"Permission target must be a model name or a DocumentHandle, "
        f"got {type(target).__name__}"
    )
