"""FastAPI application entry point for the marketplace escrow engine.

Lifecycle:
    1. Startup: Initialize logging, storage (memory or database), Redis,
       build the services and start the timeout sweeper.
    2. Running: Serve the REST API at /api/v1/*.
    3. Shutdown: Stop the sweeper, flush pending notifications, close
       database and Redis connections gracefully.

Run with:
    uvicorn marketplace_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from marketplace_escrow.config import get_settings
from marketplace_escrow.logging_config import get_logger, setup_logging
from marketplace_escrow.services.container import build_services

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from marketplace_escrow.config import Settings
    from marketplace_escrow.domain.ports import StoreFactory
    from marketplace_escrow.services.container import Services


async def _build_store_factory(settings: Settings) -> StoreFactory:
    if settings.storage_backend == "database":
        from marketplace_escrow.infrastructure.database import SqlAlchemyStoreFactory, init_db

        return SqlAlchemyStoreFactory(await init_db())

    from marketplace_escrow.infrastructure.memory import MemoryStoreFactory

    return MemoryStoreFactory()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        storage=settings.storage_backend,
    )

    # 2. Storage and services (tests may inject their own)
    services: Services | None = getattr(app.state, "services", None)
    owns_services = services is None
    if owns_services:
        services = build_services(
            await _build_store_factory(settings),
            settings.to_policy(),
            admin_ids=settings.admin_id_list,
            notification_timeout=settings.notification_timeout_seconds,
            sweep_interval_seconds=settings.sweep_interval_seconds,
        )
        app.state.services = services

    # 3. Initialize Redis for Idempotency-Key replay
    from marketplace_escrow.infrastructure.redis_client import (
        IdempotencyCache,
        close_redis,
        init_redis,
    )

    app.state.idempotency = None
    if settings.redis_enabled:
        try:
            app.state.idempotency = IdempotencyCache(await init_redis())
        except Exception as exc:
            logger.warning("app.redis_unavailable", error=str(exc))

    # 4. Timeout sweeper
    if owns_services and settings.sweeper_enabled:
        services.sweeper.start()

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await services.sweeper.stop()
    await services.bus.drain()
    if owns_services and settings.storage_backend == "database":
        from marketplace_escrow.infrastructure.database import close_db

        await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app(services: Services | None = None) -> FastAPI:
    """Application factory: creates and configures the FastAPI app.

    Passing ``services`` skips storage setup and the background sweeper,
    which is what the API tests do.
    """
    settings = get_settings()

    app = FastAPI(
        title="Marketplace Escrow",
        description=(
            "Order engine for a services marketplace: escrow, order lifecycle, "
            "revisions, disputes and deadline sweeping."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    if services is not None:
        app.state.services = services

    # --- Middleware ---
    from marketplace_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from marketplace_escrow.api.routes.disputes import router as disputes_router
    from marketplace_escrow.api.routes.health import router as health_router
    from marketplace_escrow.api.routes.maintenance import router as maintenance_router
    from marketplace_escrow.api.routes.orders import router as orders_router
    from marketplace_escrow.api.routes.submissions import router as submissions_router

    app.include_router(health_router)
    app.include_router(orders_router)
    app.include_router(submissions_router)
    app.include_router(disputes_router)
    app.include_router(maintenance_router)

    return app


# The app instance used by Uvicorn
app = create_app()
