"""
Coverage tracker - records test coverage events from CI webhooks and local
test runs.

Features:
- Append-only SQLite store of coverage events
- Local coverage harvesting after each inbound event
- Best-effort forwarding of harvested events to a remote collector
- JSON and HTML views of all recorded events
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from .config import Settings, get_settings
from .logging import setup_logging, get_logger
from .api.router import router
from .deps import get_health_checker
from .harvest.harvester import CoverageHarvester
from .health import HealthChecker
from .metrics import Metrics
from .middleware.correlation import CorrelationIdMiddleware
from .middleware.error_handler import ErrorHandlerMiddleware
from .middleware.metrics import MetricsMiddleware
from .middleware.validation import ValidationMiddleware
from .services.forwarder import EventForwarder
from .services.ingestion import IngestionCoordinator
from .store import ActionStore
from .version import SERVICE_NAME, VERSION

logger = get_logger()


def create_app(
    settings: Settings | None = None,
    harvester: CoverageHarvester | None = None,
    forwarder: EventForwarder | None = None,
) -> FastAPI:
    """
    Build the tracker application.

    Components are created here and attached to app.state on startup, so
    every app instance carries its own store, forwarder and metrics.

    Args:
        settings: Configuration (defaults to environment settings)
        harvester: Override for the local coverage harvester
        forwarder: Override for the event forwarder (not yet started)
    """
    settings = settings or get_settings()
    metrics = Metrics(service_name=SERVICE_NAME, version=VERSION)

    if harvester is None and settings.HARVEST_ENABLED:
        harvester = CoverageHarvester(
            settings.harvest_argv,
            timeout_seconds=settings.HARVEST_TIMEOUT_SECONDS,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "service_starting",
            version=VERSION,
            env=settings.ENV,
            db_name=settings.DB_NAME,
            dest_endpoint=settings.DEST_ENDPOINT,
            harvest_enabled=harvester is not None,
        )
        store = ActionStore(settings.DB_NAME)
        # StorageUnavailable aborts startup
        await store.initialize()

        event_forwarder = forwarder or EventForwarder(
            settings.DEST_ENDPOINT,
            queue_size=settings.FORWARDER_QUEUE_SIZE,
            metrics=metrics,
        )
        event_forwarder.start()

        coordinator = IngestionCoordinator(
            store,
            forwarder=event_forwarder,
            harvester=harvester,
            metrics=metrics,
        )
        app.state.store = store
        app.state.forwarder = event_forwarder
        app.state.coordinator = coordinator
        app.state.health_checker = HealthChecker(store, service_name=SERVICE_NAME, version=VERSION)

        try:
            yield
        finally:
            logger.info("service_stopping")
            await coordinator.drain()
            await event_forwarder.shutdown()
            await store.close()
            metrics.mark_down()

    app = FastAPI(
        title="Coverage Tracker",
        version=VERSION,
        description="Tracks test coverage results from CI and local test runs",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.metrics = metrics

    # add_middleware wraps, so the last one added runs first
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(ValidationMiddleware, max_event_size=settings.MAX_EVENT_SIZE)
    app.add_middleware(MetricsMiddleware, metrics=metrics)
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(router)
    app.mount("/metrics", make_asgi_app(registry=metrics.registry))

    @app.get("/health")
    async def health(checker: HealthChecker = Depends(get_health_checker)):
        """Liveness probe - returns 200 while the process is serving."""
        logger.debug("health_check_liveness")
        return checker.liveness()

    @app.get("/health/ready")
    async def health_ready(checker: HealthChecker = Depends(get_health_checker)):
        """
        Readiness probe.

        Returns:
            200: Store is reachable and disk space is sufficient
            503: Service is not ready
        """
        logger.debug("health_check_readiness")
        result = await checker.readiness()
        status_code = 200 if result["status"] == "ready" else 503
        return JSONResponse(result, status_code=status_code)

    return app


def run():
    """Console entry point: configure logging and serve with uvicorn."""
    import uvicorn

    settings = get_settings()
    setup_logging(json_output=settings.LOG_JSON, level=settings.LOG_LEVEL)
    uvicorn.run(
        create_app(settings),
        host=settings.SERVICE_HOST,
        port=settings.SERVICE_PORT,
    )


if __name__ == "__main__":
    run()
