"""FastAPI application initialization and configuration module.

This module assembles the Vigil service:
- Application lifecycle (store connection on startup, shutdown sequence on exit)
- The request pipeline, registered in a fixed order
- Exception handlers and the not-found fallback
- Operational (/health, /metrics) and business (/api) routes
- OpenTelemetry instrumentation

Middleware run in reverse order of registration: the last one added is the
outermost and sees the request first.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger
from starlette.middleware.cors import CORSMiddleware

from src.api.middleware.body_limit import BodyLimitMiddleware
from src.api.middleware.error_handler import (
    ErrorInterceptionMiddleware,
    register_exception_handlers,
)
from src.api.middleware.metrics import MetricsMiddleware
from src.api.middleware.rate_limit import RateLimitMiddleware
from src.api.middleware.request_context import RequestContextMiddleware
from src.api.middleware.security_headers import SecurityHeadersMiddleware
from src.api.routes import business, health, metrics
from src.api.services import Services, create_services
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.core.logging import setup_logging
from src.core.observability import instrument_app, setup_tracing


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan events.

    A store that cannot be reached at startup does not stop the service: the
    supervisor keeps retrying in the background and ``/health`` reports it.

    Args:
        app_instance: The FastAPI application instance.

    Yields:
        None: Nothing is yielded, this is just a lifespan context.
    """
    services: Services = app_instance.state.services

    if not await services.store.connect():
        logger.warning("Store unavailable at startup, retrying in the background")
    services.store.start_supervisor()

    logger.info(
        "Application startup complete - {} v{}",
        app_instance.title,
        app_instance.version,
    )

    yield

    logger.info("Application shutdown initiated")
    exit_code = await services.sequencer.close()
    logger.info("Application shutdown complete", exit_code=exit_code)


def add_pipeline(application: FastAPI, services: Services) -> None:
    """Register the request pipeline middleware.

    Args:
        application: The application to configure.
        services: The application's collaborators.
    """
    settings = services.settings
    security = settings.security_config
    rate_limit = settings.rate_limit_config

    # 8. Error interception (directly around the router)
    application.add_middleware(
        ErrorInterceptionMiddleware, registry=services.registry, settings=settings
    )

    # 5. Metrics start
    application.add_middleware(MetricsMiddleware)

    # 4. Body decoding with a hard size ceiling
    application.add_middleware(
        BodyLimitMiddleware,
        max_body_bytes=settings.request_config.max_body_bytes,
    )

    # 3. Rate limit admission
    if rate_limit.enabled:
        application.add_middleware(
            RateLimitMiddleware,
            limiter=services.limiter,
            path_prefix=rate_limit.path_prefix,
            trust_proxy_headers=bool(rate_limit.trust_proxy_headers),
        )

    # 2. Origin policy
    application.add_middleware(
        CORSMiddleware,
        allow_origins=security.allowed_origins,
        allow_credentials=security.allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 1. Security headers
    application.add_middleware(
        SecurityHeadersMiddleware,
        hsts_enabled=security.hsts_enabled,
        hsts_max_age=security.hsts_max_age,
        hsts_include_subdomains=security.hsts_include_subdomains,
        hsts_preload=security.hsts_preload,
        content_security_policy=security.content_security_policy,
    )

    # 0. Pipeline entry (request context, shutdown admission, metrics finish)
    application.add_middleware(
        RequestContextMiddleware,
        registry=services.registry,
        sequencer=services.sequencer,
        log_config=settings.log_config,
        trust_proxy_headers=bool(rate_limit.trust_proxy_headers),
    )


def create_app(
    settings: Settings | None = None, *, services: Services | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided, will use get_settings().
        services: Pre-built collaborators (tests); built from settings when omitted.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = services.settings if services is not None else get_settings()

    setup_logging(settings)
    setup_tracing(settings)

    if services is None:
        services = create_services(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    application.state.services = services

    register_exception_handlers(application)
    add_pipeline(application, services)

    application.include_router(health.router)
    application.include_router(metrics.router)
    application.include_router(business.router)

    instrument_app(application, settings)

    return application


app = create_app()
