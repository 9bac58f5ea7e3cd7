import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ridedesk.api.dependencies import require_api_session
from ridedesk.api.error_handlers import register_exception_handlers
from ridedesk.api.routers import (
    attachments,
    customers,
    drivers,
    pages,
    tenant_config,
    vehicles,
    work_schedule,
)
from ridedesk.background_tasks import run_rate_limit_sweep
from ridedesk.config.settings import Settings, settings as default_settings
from ridedesk.config.tenant_config import CredentialResolver, FileConfigStore, TenantRegistry
from ridedesk.middleware.auth_middleware import SessionAuthMiddleware
from ridedesk.middleware.rate_limit_middleware import RateLimitMiddleware
from ridedesk.middleware.tenant_middleware import TenantMiddleware
from ridedesk.services.identity_service import ClerkIdentityProvider, IdentityProvider
from ridedesk.services.rate_limiter import RateLimiter
from ridedesk.services.tenant_service import AuthorizationGate
from ridedesk.utils.logging_config import app_logger as logger


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[TenantRegistry] = None,
    credential_resolver: Optional[CredentialResolver] = None,
    identity_provider: Optional[IdentityProvider] = None,
    rate_limiter: Optional[RateLimiter] = None,
    teable_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the dashboard app. Every collaborator can be swapped out for tests."""
    settings = settings or default_settings
    registry = registry or TenantRegistry(FileConfigStore(settings.TENANT_CONFIG_DIR))
    credential_resolver = credential_resolver or CredentialResolver()
    identity_provider = identity_provider or ClerkIdentityProvider(
        jwt_key=settings.CLERK_JWT_KEY,
        algorithm=settings.CLERK_JWT_ALGORITHM,
        secret_key=settings.CLERK_SECRET_KEY,
        api_url=settings.CLERK_API_URL,
        timeout=settings.BACKEND_TIMEOUT_SECONDS,
    )
    rate_limiter = rate_limiter or RateLimiter(
        settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS
    )

    @asynccontextmanager
    async def lifespan(fapp: FastAPI):
        logger.info("Starting RideDesk dashboard...")
        logger.info("Tenant configs: %s (%s found)", settings.TENANT_CONFIG_DIR, len(registry.list_tenants()))
        logger.info("Default tenant: %s", settings.DEFAULT_TENANT_ID)
        logger.info(
            "Identity provider: %s",
            "configured" if settings.CLERK_JWT_KEY else "not configured",
        )
        sweep_task = asyncio.create_task(
            run_rate_limit_sweep(rate_limiter, settings.RATE_LIMIT_SWEEP_SECONDS)
        )
        yield
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
        logger.info("RideDesk dashboard stopped")

    app = FastAPI(
        title="RideDesk",
        description="Multi-tenant ride scheduling dashboard over a hosted table service",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.tenant_registry = registry
    app.state.credential_resolver = credential_resolver
    app.state.identity_provider = identity_provider
    app.state.authorization_gate = AuthorizationGate(
        identity_provider, settings.ON_MEMBERSHIP_CHECK_ERROR
    )
    app.state.rate_limiter = rate_limiter
    app.state.teable_transport = teable_transport

    # Added innermost first: requests pass rate limit, then tenant, then session
    app.add_middleware(
        SessionAuthMiddleware,
        identity_provider=identity_provider,
        public_prefixes=settings.public_route_prefixes(),
    )
    app.add_middleware(TenantMiddleware, default_tenant_id=settings.DEFAULT_TENANT_ID)
    app.add_middleware(RateLimitMiddleware, limiter=rate_limiter)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS.split(",")
        if settings.ALLOWED_ORIGINS
        else ["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    api_session = [Depends(require_api_session)]
    app.include_router(tenant_config.router, prefix="/api/tenant-config", tags=["Tenant"])
    app.include_router(
        work_schedule.router, prefix="/api/work-schedule", tags=["Work Schedule"], dependencies=api_session
    )
    app.include_router(
        customers.router, prefix="/api/customers", tags=["Customers"], dependencies=api_session
    )
    app.include_router(
        drivers.router, prefix="/api/drivers", tags=["Drivers"], dependencies=api_session
    )
    app.include_router(
        vehicles.router, prefix="/api/vehicles", tags=["Vehicles"], dependencies=api_session
    )
    app.include_router(
        vehicles.vehicle_types_router,
        prefix="/api/vehicle-types",
        tags=["Vehicles"],
        dependencies=api_session,
    )
    app.include_router(
        attachments.router, prefix="/api", tags=["Attachments"], dependencies=api_session
    )

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "ridedesk"}

    # Last, so /{tenant_id} never shadows another route
    app.include_router(pages.router, tags=["Pages"])

    return app
