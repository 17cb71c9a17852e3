"""Security headers middleware for adding common security headers to responses."""

from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.core.constants import DEFAULT_HSTS_MAX_AGE

STATIC_SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Permitted-Cross-Domain-Policies": "none",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    This middleware adds the following security headers:
    - X-Content-Type-Options: nosniff - Prevents MIME type sniffing
    - X-Frame-Options: SAMEORIGIN - Prevents clickjacking by other origins
    - X-XSS-Protection: 0 - Disables the buggy legacy XSS auditor
    - Referrer-Policy, Cross-Origin-*-Policy, Origin-Agent-Cluster - Isolation
    - X-DNS-Prefetch-Control, X-Download-Options,
      X-Permitted-Cross-Domain-Policies - Legacy browser hardening
    - Content-Security-Policy (if configured)
    - Strict-Transport-Security: max-age=31536000; includeSubDomains (if HSTS enabled)

    Args:
        app: The ASGI application to wrap.
        hsts_enabled: Whether to include HSTS header (defaults to True).
        hsts_max_age: Max age for HSTS in seconds (defaults to 1 year).
        hsts_include_subdomains: Whether to include subdomains in HSTS.
        hsts_preload: Whether to include preload directive.
        content_security_policy: CSP header value, or None to omit it.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        hsts_enabled: bool = True,
        hsts_max_age: int = DEFAULT_HSTS_MAX_AGE,
        hsts_include_subdomains: bool = True,
        hsts_preload: bool = False,
        content_security_policy: str | None = None,
    ) -> None:
        super().__init__(app)
        self.hsts_enabled = hsts_enabled
        self.hsts_max_age = hsts_max_age
        self.hsts_include_subdomains = hsts_include_subdomains
        self.hsts_preload = hsts_preload
        self.content_security_policy = content_security_policy

    def _build_hsts_header(self) -> str:
        """Build the Strict-Transport-Security header value.

        Returns:
            str: The HSTS header value string.
        """
        parts = [f"max-age={self.hsts_max_age}"]

        if self.hsts_include_subdomains:
            parts.append("includeSubDomains")

        if self.hsts_preload:
            parts.append("preload")

        return "; ".join(parts)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Add security headers to the response.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or route handler.

        Returns:
            Response: The HTTP response with security headers added.
        """
        response = await call_next(request)

        response.headers.update(STATIC_SECURITY_HEADERS)

        if self.content_security_policy:
            response.headers["Content-Security-Policy"] = self.content_security_policy

        if self.hsts_enabled:
            response.headers["Strict-Transport-Security"] = self._build_hsts_header()

        return response
