"""
Field-level query redaction.

Given the field visibility resolved for a model, rewrites a query so hidden
fields are neither returned, nor usable to order results, nor usable to probe
values through the filter.

Projection:
- Inclusion projections lose the hidden field. If no inclusion is left, the
  projection falls back to the identity field only; dropping the projection
  altogether would return every field. A hidden identity field is excluded
  explicitly, since MongoDB returns it by default.
- Otherwise (no projection, or an exclusion projection) the hidden field is
  added as an exclusion.

Sort:
- Hidden fields are dropped from the sort keys, so ordering cannot be used
  to infer their values.

Filter:
- Keys naming a hidden field are deleted; list-valued operators ($or, $and,
  $nor) are cleaned member by member. Members emptied by the redaction are
  dropped, and an operator left without members is deleted: an empty `$or`
  list must never be sent, since MongoDB rejects it and other engines read it
  as "match nothing".

A key matches a hidden field when it equals it or is a dotted path below it
(`budget.amount` is hidden when `budget` is).

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import logging
from typing import Any, Dict, List, Mapping

from ..constants import DEFAULT_IDENTITY_FIELD
from .query import Query

logger = logging.getLogger(__name__)


def matches_field(key: str, field: str) -> bool:
    """Whether `key` refers to `field` or to a path inside it."""
    return key == field or key.startswith(field + ".")


def hidden_fields(visibility: Mapping[str, bool]) -> List[str]:
    """Fields explicitly marked not visible, in mapping order."""
    return [field for field, visible in visibility.items() if not visible]


class QueryRedactor:
    """Removes hidden fields from a query's projection, sort and filter."""

    def __init__(self, identity_field: str = DEFAULT_IDENTITY_FIELD) -> None:
        self.identity_field = identity_field

    def redact(self, query: Query, visibility: Mapping[str, bool]) -> Query:
        """
        Apply the visibility map to `query` in place.

        Returns:
            The same query, for chaining
        """
        fields = hidden_fields(visibility or {})
        if not fields:
            return query

        # decided once, before any field is removed
        inclusive = query.has_inclusions()
        for field in fields:
            self.redact_projection(query, field, inclusive)
            self.redact_sort(query, field)
            self.redact_filter(query.filter, field)
        if inclusive and not query.has_inclusions():
            query.projection = self.fallback_projection(fields)

        logger.debug(f"Redacted fields {fields} from query")
        return query

    def fallback_projection(self, fields: List[str]) -> Dict[str, Any]:
        """Projection used once an inclusion projection has nothing left."""
        if any(matches_field(self.identity_field, field) for field in fields):
            return {field: 0 for field in fields}
        return {self.identity_field: 1}

    def redact_projection(self, query: Query, field: str, inclusive: bool) -> None:
        if inclusive:
            projection = query.projection or {}
            for key in [k for k in projection if matches_field(k, field)]:
                del projection[key]
            # inclusion projections return the identity unless it is excluded
            if matches_field(self.identity_field, field):
                projection[field] = 0
            query.projection = projection
            return

        projection = query.projection if query.projection is not None else {}
        # MongoDB rejects a projection holding both a path and its parent
        for key in [k for k in projection if matches_field(k, field) and k != field]:
            del projection[key]
        projection[field] = 0
        query.projection = projection

    def redact_sort(self, query: Query, field: str) -> None:
        query.sort = [(key, direction) for key, direction in query.sort
                      if not matches_field(key, field)]

    def redact_filter(self, conditions: Dict[str, Any], field: str) -> bool:
        """
        Delete references to `field` from a filter tree, in place.

        Returns:
            Whether anything was removed
        """
        removed = False
        for key in list(conditions):
            if matches_field(key, field):
                del conditions[key]
                removed = True
                continue

            value = conditions[key]
            if not (key.startswith("$") and isinstance(value, list)):
                continue

            # members that were empty to begin with keep their meaning
            survivors = []
            for member in value:
                if isinstance(member, dict) and self.redact_filter(member, field):
                    removed = True
                    if not member:
                        continue
                survivors.append(member)

            if survivors:
                conditions[key] = survivors
            elif value:
                del conditions[key]
        return removed
