"""Rate limit admission stage of the pipeline.

Applies a ``FixedWindowRateLimiter`` to requests under a path prefix only
(``/api`` by default, matching ``/api`` itself and everything below it).
Rejected requests get a 429 with ``Retry-After``; every limited response,
admitted or not, carries the ``X-RateLimit-*`` headers.
"""

import math
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.api.constants import (
    RATE_LIMIT_LIMIT_HEADER,
    RATE_LIMIT_REMAINING_HEADER,
    RATE_LIMIT_RESET_HEADER,
    RETRY_AFTER_HEADER,
)
from src.api.schemas.errors import ErrorResponse
from src.api.utils.client_ip import get_client_ip
from src.api.utils.responses import ORJSONResponse
from src.core.exceptions import AdmissionRejectedError
from src.core.rate_limit import FixedWindowRateLimiter, RateLimitDecision


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware enforcing per-client admission under a path prefix.

    Args:
        app: The ASGI application to wrap.
        limiter: The limiter holding per-client windows.
        path_prefix: Only paths equal to or below this prefix are limited.
        trust_proxy_headers: Whether client identity may come from proxy headers.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        limiter: FixedWindowRateLimiter,
        path_prefix: str = "/api",
        trust_proxy_headers: bool = False,
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.path_prefix = "/" + path_prefix.strip("/")
        self.trust_proxy_headers = trust_proxy_headers

    def applies_to(self, path: str) -> bool:
        """Whether requests to ``path`` are rate limited."""
        if self.path_prefix == "/":
            return True
        return path == self.path_prefix or path.startswith(f"{self.path_prefix}/")

    @staticmethod
    def _apply_headers(response: Response, decision: RateLimitDecision) -> None:
        reset_at = math.ceil(decision.reset_at)
        response.headers[RATE_LIMIT_LIMIT_HEADER] = str(decision.limit)
        response.headers[RATE_LIMIT_REMAINING_HEADER] = str(decision.remaining)
        response.headers[RATE_LIMIT_RESET_HEADER] = str(reset_at)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Admit or reject the request.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or route handler.

        Returns:
            Response: The downstream response, or a 429 rejection.
        """
        if not self.applies_to(request.url.path):
            return await call_next(request)

        client_id = get_client_ip(
            request.scope, trust_proxy_headers=self.trust_proxy_headers
        )
        decision = self.limiter.admit(client_id)

        if not decision.allowed:
            error = AdmissionRejectedError(client_id, decision.reset_after)
            logger.warning(
                "Rate limit exceeded",
                client_host=client_id,
                path=request.url.path,
                retry_after=decision.retry_after_seconds,
            )
            response: Response = ORJSONResponse(
                status_code=error.status_code,
                content=ErrorResponse(error=error.message).to_content(),
                headers={RETRY_AFTER_HEADER: str(decision.retry_after_seconds)},
            )
            self._apply_headers(response, decision)
            return response

        response = await call_next(request)
        self._apply_headers(response, decision)
        return response
