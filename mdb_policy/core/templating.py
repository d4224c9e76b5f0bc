"""
Placeholder substitution for aggregated conditions.

Conditions may contain `{{name}}` or `{{name.key.key}}` placeholders in any
string, key or value, at any depth. Substitution walks the condition tree and
returns a new tree; the input is never modified.

- A string that is exactly one placeholder is replaced by the parameter value
  itself, so ObjectIds, numbers and lists keep their type.
- Placeholders embedded in a longer string are interpolated with `str()`.
- An unknown parameter raises TemplateParameterMissing. Leaving it in place
  would produce a filter that silently matches nothing (or the wrong thing).

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

from collections.abc import Mapping
from typing import Any

from ..constants import PARAMETER_PATH_PATTERN, PLACEHOLDER_PATTERN
from ..exceptions import TemplateError, TemplateParameterMissing

_MISSING = object()


def _lookup(value: Any, key: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(key, _MISSING)
    return getattr(value, key, _MISSING)


def resolve_parameter(expression: str, parameters: Mapping[str, Any]) -> Any:
    """
    Resolve a placeholder expression against the parameters.

    Dotted paths walk mappings by key and other objects by attribute.

    Raises:
        TemplateError: If the expression is not a (dotted) name
        TemplateParameterMissing: If any segment of the path is missing
    """
    expression = expression.strip()
    if not PARAMETER_PATH_PATTERN.match(expression):
        raise TemplateError(
            f"Invalid placeholder expression '{{{{{expression}}}}}': only names "
            f"and dotted paths are supported",
            context={"expression": expression},
        )

    name, *path = expression.split(".")
    value = parameters.get(name, _MISSING)
    if value is _MISSING:
        raise TemplateParameterMissing(
            f"Placeholder '{{{{{expression}}}}}' has no matching parameter",
            parameter=expression,
            context={"available": sorted(parameters)},
        )
    for key in path:
        value = _lookup(value, key)
        if value is _MISSING:
            raise TemplateParameterMissing(
                f"Placeholder '{{{{{expression}}}}}' has no matching parameter",
                parameter=expression,
            )
    return value


def substitute_string(template: str, parameters: Mapping[str, Any]) -> Any:
    """Substitute placeholders in a single string (see module docstring)."""
    if "{{" not in template:
        return template

    whole = PLACEHOLDER_PATTERN.fullmatch(template)
    if whole and "{{" not in whole.group(1):
        return resolve_parameter(whole.group(1), parameters)

    return PLACEHOLDER_PATTERN.sub(
        lambda match: str(resolve_parameter(match.group(1), parameters)), template
    )


def substitute(condition: Any, parameters: Mapping[str, Any]) -> Any:
    """
    Return a copy of `condition` with every placeholder substituted.

    Mappings and lists/tuples are rebuilt; other leaves (numbers, booleans,
    ObjectIds, datetimes) are returned as-is.
    """
    if isinstance(condition, str):
        return substitute_string(condition, parameters)
    if isinstance(condition, Mapping):
        result = {}
        for key, value in condition.items():
            if isinstance(key, str):
                key = substitute_string(key, parameters)
                if not isinstance(key, str):
                    key = str(key)
            result[key] = substitute(value, parameters)
        return result
    if isinstance(condition, list):
        return [substitute(item, parameters) for item in condition]
    if isinstance(condition, tuple):
        return tuple(substitute(item, parameters) for item in condition)
    return condition
