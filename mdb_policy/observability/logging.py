"""
Contextual logging utilities for MDB_POLICY.

Log records emitted while a condition is being resolved carry the model and
permission under evaluation as `extra` fields, so structured handlers can
index decisions without parsing messages.
"""

import contextvars
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

# Fields of the evaluation under way
_evaluation_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "policy_evaluation_context", default={}
)


@contextmanager
def policy_context(**fields: Any) -> Iterator[dict[str, Any]]:
    """
    Attach evaluation fields (model_name, permission, ...) to log records
    emitted inside the block. Nested blocks extend the outer fields; the outer
    fields are restored on exit.
    """
    context = {**_evaluation_context.get(), **fields}
    token = _evaluation_context.set(context)
    try:
        yield context
    finally:
        _evaluation_context.reset(token)


def get_logging_context() -> dict[str, Any]:
    """Copy of the fields set by the enclosing `policy_context` blocks."""
    return dict(_evaluation_context.get())


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter adding the evaluation fields to every record.

    Fields passed explicitly through `extra` win over the context.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**get_logging_context(), **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str) -> ContextualLoggerAdapter:
    """
    Get a contextual logger.

    Args:
        name: Logger name (typically __name__)
    """
    return ContextualLoggerAdapter(logging.getLogger(name), {})


def log_operation(
    logger: logging.Logger | logging.LoggerAdapter,
    operation: str,
    level: int = logging.INFO,
    success: bool = True,
    duration_ms: float | None = None,
    **fields: Any,
) -> None:
    """
    Log the outcome of an operation with structured fields.

    Args:
        logger: Logger or adapter to log through
        operation: Operation name (e.g. "policy.ask_permission")
        level: Log level
        success: Whether the operation succeeded
        duration_ms: Operation duration in milliseconds
        **fields: Additional fields (decision, ...)
    """
    extra: dict[str, Any] = {**get_logging_context(), "operation": operation, "success": success}
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)
    extra.update(fields)

    details = " ".join(f"{key}={value}" for key, value in fields.items())
    message = f"{operation} {'ok' if success else 'failed'}"
    if details:
        message = f"{message} ({details})"
    logger.log(level, message, extra=extra)
