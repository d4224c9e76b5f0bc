"""
Request-scoped rule parameters.

Rules usually depend on who is asking ("documents owned by {{user_id}}").
`bind_parameters` stores such values for the current execution (request,
task) and `request_parameters` is a model provider that hands them to every
evaluation started inside the block:

    engine.add_model_provider(request_parameters)

    with bind_parameters(user_id=user["_id"], team=user["team"]):
        docs = await secured_db.activities.find({})

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Dict, Mapping

_request_parameters: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar(
    "policy_request_parameters", default={}
)


@contextmanager
def bind_parameters(**parameters: Any) -> Iterator[Dict[str, Any]]:
    """
    Make `parameters` available to rules evaluated inside the block.

    Nested blocks extend (and may override) the outer parameters; the outer
    parameters are restored on exit.
    """
    merged = {**_request_parameters.get(), **parameters}
    token = _request_parameters.set(merged)
    try:
        yield merged
    finally:
        _request_parameters.reset(token)


def request_parameters() -> Dict[str, Any]:
    """Model provider returning the parameters bound for the current execution."""
    return dict(_request_parameters.get())
