"""Error interception and global exception handlers.

Two layers turn failures into the ``{error, message}`` JSON body:

- ``ErrorInterceptionMiddleware`` sits directly around the router and catches
  every exception a handler lets escape. It renders a 500, logs the failure
  with sanitized context and counts it as an ``error_handling`` business
  operation. The message is the exception text outside production and a
  generic one in production.
- Exception handlers registered on the app render ``VigilError`` subclasses,
  ``HTTPException`` and request validation errors with their own status codes.

``not_found`` is installed as the router default and renders the 404 body.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from starlette.websockets import WebSocketClose

from src.api.constants import (
    GENERIC_ERROR_MESSAGE,
    INTERNAL_SERVER_ERROR,
    OPERATION_ERROR_HANDLING,
    ROUTE_NOT_FOUND,
    STATUS_ERROR,
)
from src.api.schemas.errors import ErrorResponse
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings
from src.core.context import get_correlation_id
from src.core.error_context import sanitize_error_context, sanitize_headers
from src.core.exceptions import HandlerError, PayloadTooLargeError, VigilError
from src.core.metrics import BUSINESS_OPERATIONS_TOTAL, MetricsRegistry


def internal_error_response(exc: Exception, settings: Settings) -> ORJSONResponse:
    """Build the 500 response for an uncaught exception.

    Args:
        exc: The uncaught exception.
        settings: Application settings (environment gates the message).

    Returns:
        ORJSONResponse: The 500 response.
    """
    if settings.is_production:
        message = GENERIC_ERROR_MESSAGE
    else:
        message = str(exc) or type(exc).__name__

    return ORJSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=INTERNAL_SERVER_ERROR, message=message
        ).to_content(),
    )


class ErrorInterceptionMiddleware:
    """Catches exceptions escaping route handlers and renders a 500.

    Args:
        app: The ASGI application to wrap.
        registry: Registry receiving the ``error_handling`` business counter.
        settings: Application settings.
    """

    def __init__(
        self, app: ASGIApp, *, registry: MetricsRegistry, settings: Settings
    ) -> None:
        self.app = app
        self.registry = registry
        self.settings = settings

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            error = HandlerError(exc, scope["method"], scope["path"])
            error_context = sanitize_error_context(
                error,
                {
                    "request_method": scope["method"],
                    "request_path": scope["path"],
                    "exception_type": type(exc).__name__,
                    "request_headers": sanitize_headers(dict(Headers(scope=scope))),
                },
            )
            logger.opt(exception=exc).error(
                "Unhandled exception: {}",
                error.message,
                correlation_id=get_correlation_id(),
                **error_context,
            )
            self.registry.inc(
                BUSINESS_OPERATIONS_TOTAL,
                {"operation": OPERATION_ERROR_HANDLING, "status": STATUS_ERROR},
            )

            if response_started:
                raise

            response = internal_error_response(exc, self.settings)
            await response(scope, receive, send)


async def vigil_error_handler(request: Request, exc: Exception) -> Response:
    """Handle VigilError exceptions raised by handlers.

    Args:
        request: The FastAPI request that caused the exception
        exc: The VigilError exception to handle

    Returns:
        Response: ORJSONResponse with the error body

    Raises:
        TypeError: If exc is not a VigilError instance
    """
    # Type narrowing - we know this handler only receives VigilError
    if not isinstance(exc, VigilError):
        raise TypeError(f"Expected VigilError, got {type(exc).__name__}")

    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": str(request.url.path),
        },
    )
    log = logger.warning if exc.is_expected else logger.error
    log(
        "Handling {}: {}",
        type(exc).__name__,
        exc.message,
        correlation_id=get_correlation_id(),
        **error_context,
    )

    content = ErrorResponse(error=exc.message)
    if isinstance(exc, PayloadTooLargeError):
        content.limit = exc.limit

    return ORJSONResponse(status_code=exc.status_code, content=content.to_content())


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle Starlette HTTPException.

    Args:
        request: The FastAPI request that caused the exception
        exc: The HTTPException to handle

    Returns:
        Response: ORJSONResponse with the error body

    Raises:
        TypeError: If exc is not an HTTPException instance
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    logger.warning(
        "HTTP exception",
        correlation_id=get_correlation_id(),
        status=exc.status_code,
        method=request.method,
        path=str(request.url.path),
        detail=exc.detail,
    )

    return ORJSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail)).to_content(),
        headers=exc.headers,
    )


async def validation_error_handler(request: Request, exc: Exception) -> Response:
    """Handle FastAPI RequestValidationError exceptions.

    Args:
        request: The FastAPI request that caused the exception
        exc: The RequestValidationError exception to handle

    Returns:
        Response: ORJSONResponse with a 422 error body

    Raises:
        TypeError: If exc is not a RequestValidationError instance
    """
    if not isinstance(exc, RequestValidationError):
        raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

    # Get the field path (e.g., ['query', 'limit'] -> 'limit')
    problems = []
    for error in exc.errors():
        field_path = error.get("loc", ())
        field_name = ".".join(str(loc) for loc in field_path[1:]) or "root"
        problems.append(f"{field_name}: {error.get('msg', 'Invalid value')}")

    logger.warning(
        "Request validation failed",
        correlation_id=get_correlation_id(),
        method=request.method,
        path=str(request.url.path),
        validation_errors=problems,
    )

    return ORJSONResponse(
        status_code=422,
        content=ErrorResponse(
            error="Request validation failed", message="; ".join(problems)
        ).to_content(),
    )


async def not_found(scope: Scope, receive: Receive, send: Send) -> None:
    """Router default: render 404 for requests no route matched."""
    if scope["type"] == "websocket":
        await WebSocketClose()(scope, receive, send)
        return

    response = ORJSONResponse(
        status_code=404, content=ErrorResponse(error=ROUTE_NOT_FOUND).to_content()
    )
    await response(scope, receive, send)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application.

    Uncaught exceptions are left to ``ErrorInterceptionMiddleware``.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(VigilError, vigil_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.router.default = not_found

    logger.info("Exception handlers registered")
