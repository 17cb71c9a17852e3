"""Unit tests for SecurityHeadersMiddleware."""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.api.middleware.security_headers import (
    STATIC_SECURITY_HEADERS,
    SecurityHeadersMiddleware,
)
from src.core.constants import DEFAULT_HSTS_MAX_AGE


def build_app(**options: object) -> FastAPI:
    app = FastAPI()

    @app.get("/ping")
    async def ping() -> dict[str, str]:
        return {"status": "ok"}

    app.add_middleware(SecurityHeadersMiddleware, **options)  # type: ignore[arg-type]
    return app


async def fetch_headers(app: FastAPI, path: str = "/ping") -> dict[str, str]:
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        response = await client.get(path)
    return dict(response.headers)


@pytest.mark.unit
class TestSecurityHeadersMiddleware:
    """Test suite for SecurityHeadersMiddleware."""

    def test_init_default_parameters(self) -> None:
        """Test middleware initializes correctly with default HSTS settings."""
        # Arrange & Act
        middleware = SecurityHeadersMiddleware(FastAPI())

        # Assert
        assert middleware.hsts_enabled is True
        assert middleware.hsts_max_age == DEFAULT_HSTS_MAX_AGE
        assert middleware.hsts_include_subdomains is True
        assert middleware.hsts_preload is False
        assert middleware.content_security_policy is None

    async def test_static_headers_added(self) -> None:
        """Test that every static security header is present."""
        # Arrange
        app = build_app()

        # Act
        headers = await fetch_headers(app)

        # Assert
        for name, value in STATIC_SECURITY_HEADERS.items():
            assert headers[name.lower()] == value

    async def test_headers_on_not_found(self) -> None:
        """Test that error responses carry the headers too."""
        headers = await fetch_headers(build_app(), "/missing")

        assert headers["x-content-type-options"] == "nosniff"

    @pytest.mark.parametrize(
        ("max_age", "include_subdomains", "preload", "expected"),
        [
            (31536000, True, False, "max-age=31536000; includeSubDomains"),
            (3600, False, False, "max-age=3600"),
            (63072000, True, True, "max-age=63072000; includeSubDomains; preload"),
        ],
    )
    async def test_hsts_header(
        self, max_age: int, include_subdomains: bool, preload: bool, expected: str
    ) -> None:
        """Test the HSTS header value for each option combination."""
        headers = await fetch_headers(
            build_app(
                hsts_max_age=max_age,
                hsts_include_subdomains=include_subdomains,
                hsts_preload=preload,
            )
        )

        assert headers["strict-transport-security"] == expected

    async def test_hsts_disabled(self) -> None:
        """Test that HSTS can be turned off."""
        headers = await fetch_headers(build_app(hsts_enabled=False))

        assert "strict-transport-security" not in headers

    async def test_content_security_policy(self) -> None:
        """Test that a configured CSP is sent."""
        policy = "default-src 'self'"

        headers = await fetch_headers(build_app(content_security_policy=policy))

        assert headers["content-security-policy"] == policy

    async def test_no_csp_by_default(self) -> None:
        """Test that no CSP is sent when none is configured."""
        headers = await fetch_headers(build_app())

        assert "content-security-policy" not in headers
