"""
FastAPI integration.

Turns `UnauthorizedError` raised anywhere below a route into a 403 response:

    app = FastAPI()
    register_policy_handlers(app)

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .exceptions import UnauthorizedError

logger = logging.getLogger(__name__)


async def unauthorized_exception_handler(request: Request, exc: UnauthorizedError) -> JSONResponse:
    """Return 403 Forbidden response describing the denied permission."""
    logger.warning(
        f"Policy denied {request.method} {request.url.path}: "
        f"{exc.permission} on {exc.model_name}[{exc.identity}]"
    )
    payload = exc.to_dict()
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={
            "detail": payload["detail"],
            "model": payload["model"],
            "permission": payload["permission"],
            "id": payload["id"],
        },
    )


def register_policy_handlers(app: FastAPI) -> FastAPI:
    """Install the policy exception handlers on `app`."""
    app.add_exception_handler(UnauthorizedError, unauthorized_exception_handler)
    return app
