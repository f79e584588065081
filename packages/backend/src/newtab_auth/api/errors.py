"""Exception handlers — identity errors → HTTP responses.

Learn: The service raises IdentityError subclasses; this single handler
turns them into `{"detail": ..., "code": ...}` with the status each
class declares. 401s carry `WWW-Authenticate: Bearer` like any other
bearer-protected endpoint.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from newtab_auth.auth.errors import IdentityError

logger = structlog.get_logger()


async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    if exc.status_code >= 500:
        logger.error("api.identity_error", code=exc.code, path=request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IdentityError, identity_error_handler)
