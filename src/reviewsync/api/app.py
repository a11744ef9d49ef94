"""FastAPI application factory for the review sync service.

Exposes the OAuth authorization and callback endpoints, the sync trigger,
review listing, integration status and a health check.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from reviewsync import __version__
from reviewsync.api.middleware.correlation import CorrelationIdMiddleware
from reviewsync.api.middleware.error_handler import setup_error_handlers
from reviewsync.api.routes.health import router as health_router
from reviewsync.api.routes.oauth import router as oauth_router
from reviewsync.api.routes.sync import router as sync_router
from reviewsync.bootstrap import Services
from reviewsync.config import SyncConfig, load_config_from_env
from reviewsync.observability.logging import setup_logging
from reviewsync.sync.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[SyncConfig] = None,
    services: Optional[Services] = None,
    enable_scheduler: bool = True,
) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        config: Configuration (default: loaded from the environment at startup)
        services: Pre-built services, mainly for tests; the caller keeps
            ownership and closes them
        enable_scheduler: Run the periodic batch sync in this process

    Returns:
        Configured FastAPI application instance

    Examples:
        >>> # uvicorn --factory reviewsync.api.app:create_app
        >>> app = create_app(enable_scheduler=False)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        active_config = services.config if services else (config or load_config_from_env())
        setup_logging(log_level=active_config.log_level, json_logs=active_config.json_logs)

        logger.info("Application startup: initializing services")
        owned = services is None
        active = services or Services(active_config)
        await active.startup()
        app.state.services = active

        scheduler: Optional[SyncScheduler] = None
        if enable_scheduler:
            scheduler = SyncScheduler(active.orchestrator, cron_expression=active_config.sync_cron)
            await scheduler.start()
        app.state.scheduler = scheduler
        logger.info("Application startup complete")

        try:
            yield
        finally:
            logger.info("Application shutdown: stopping scheduler and closing services")
            if scheduler is not None:
                await scheduler.stop()
            if owned:
                await active.close()
            logger.info("Application shutdown complete")

    app = FastAPI(
        title="ReviewSync API",
        version=__version__,
        description="OAuth integrations and external review synchronization",
        lifespan=lifespan,
    )

    app.add_middleware(CorrelationIdMiddleware)  # type: ignore[arg-type]
    setup_error_handlers(app)

    app.include_router(oauth_router)
    app.include_router(sync_router)
    app.include_router(health_router)

    return app
