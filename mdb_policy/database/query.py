"""
Mutable query representation handed to the redactor and the interception
layer, plus filter composition helpers.

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import copy
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pymongo import ASCENDING

from ..constants import AND_OPERATOR

SortSpec = Union[str, Sequence[Tuple[str, Any]], Mapping[str, Any], None]
ProjectionSpec = Union[Sequence[str], Mapping[str, Any], None]


def merge_filters(
    filter: Optional[Mapping[str, Any]], condition: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    """
    Combine a caller's filter with a policy condition.

    Optimization: if either side is empty the other one is returned (as a
    copy). Otherwise they are combined robustly with $and, so keys present on
    both sides never overwrite each other.
    """
    if not condition:
        return dict(filter or {})
    if not filter:
        return dict(condition)
    return {AND_OPERATOR: [dict(filter), dict(condition)]}


def _normalize_projection(projection: ProjectionSpec) -> Optional[Dict[str, Any]]:
    if projection is None:
        return None
    if isinstance(projection, Mapping):
        return dict(projection)
    if isinstance(projection, str):
        return {projection: 1}
    return {field: 1 for field in projection}


def _normalize_sort(sort: SortSpec) -> List[Tuple[str, Any]]:
    if not sort:
        return []
    if isinstance(sort, str):
        return [(sort, ASCENDING)]
    if isinstance(sort, Mapping):
        return list(sort.items())
    return [(key, direction) for key, direction in sort]


class Query:
    """
    Filter, projection and sort of one outgoing find operation.

    Accepts the shapes PyMongo accepts (projection as a list of field names or
    a mapping; sort as a key, a list of (key, direction) pairs or a mapping)
    and normalizes them to a mapping and a list of pairs. The filter is deep
    copied so redaction never mutates the caller's objects.
    """

    __slots__ = ("filter", "projection", "sort")

    def __init__(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        projection: ProjectionSpec = None,
        sort: SortSpec = None,
    ) -> None:
        self.filter: Dict[str, Any] = copy.deepcopy(dict(filter or {}))
        self.projection: Optional[Dict[str, Any]] = _normalize_projection(projection)
        self.sort: List[Tuple[str, Any]] = _normalize_sort(sort)

    def has_inclusions(self) -> bool:
        """Whether the projection explicitly includes at least one field."""
        if not self.projection:
            return False
        return any(bool(value) for value in self.projection.values())

    def find_kwargs(self) -> Dict[str, Any]:
        """Projection and sort as keyword arguments for Motor's find methods."""
        kwargs: Dict[str, Any] = {}
        if self.projection is not None:
            kwargs["projection"] = self.projection
        if self.sort:
            kwargs["sort"] = self.sort
        return kwargs

    def __repr__(self) -> str:
        return (
            f"Query(filter={self.filter!r}, projection={self.projection!r}, "
            f"sort={self.sort!r})"
        )
