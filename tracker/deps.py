"""FastAPI dependencies backed by components kept on app.state."""
from fastapi import Request

from .health import HealthChecker
from .services.ingestion import IngestionCoordinator


def get_coordinator(request: Request) -> IngestionCoordinator:
    return request.app.state.coordinator


def get_health_checker(request: Request) -> HealthChecker:
    return request.app.state.health_checker
