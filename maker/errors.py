"""Navigation errors and the handlers that turn them into redirects.

Authentication, authorization and not-found failures on page-level reads are
recovered at the request boundary: the client receives a ``303 See Other``
pointing at the route it should show instead, never a raw error page.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from maker.logging_config import get_logger

logger = get_logger(__name__)

LOGIN_ROUTE = "/auth/login"


class NavigationError(Exception):
    """Base class: the request cannot be served, go to ``location`` instead."""

    reason = "redirect"

    def __init__(self, location: str, detail: str | None = None):
        super().__init__(detail or location)
        self.location = location
        self.detail = detail


class Unauthenticated(NavigationError):
    """No valid session."""

    reason = "unauthenticated"

    def __init__(self, detail: str | None = None):
        super().__init__(LOGIN_ROUTE, detail)


class Forbidden(NavigationError):
    """Valid session, wrong role for the area. ``location`` is the user's own landing route."""

    reason = "forbidden"


class EntityMissing(NavigationError):
    """The referenced row vanished; ``location`` is the listing to return to."""

    reason = "not_found"


def _redirect_response(exc: NavigationError) -> JSONResponse:
    body = {"redirect": exc.location, "reason": exc.reason}
    if exc.detail:
        body["detail"] = exc.detail
    return JSONResponse(
        status_code=status.HTTP_303_SEE_OTHER,
        content=body,
        headers={"Location": exc.location},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the redirect handler for every NavigationError subclass."""

    @app.exception_handler(NavigationError)
    async def navigation_error_handler(request: Request, exc: NavigationError):
        logger.info(
            "request_redirected",
            path=request.url.path,
            reason=exc.reason,
            location=exc.location,
        )
        return _redirect_response(exc)
