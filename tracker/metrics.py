"""
Prometheus metrics for the coverage tracker.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry

from .version import SERVICE_NAME, VERSION


class Metrics:
    """
    Centralized metrics for the tracker service.

    Each instance owns its registry so several apps can coexist in one
    process (tests create one per app).
    """

    def __init__(self, service_name: str = SERVICE_NAME, version: str = VERSION, registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Ingestion
        self.events_ingested_total = Counter(
            "tracker_events_ingested_total",
            "Inbound coverage events persisted",
            ["event"],
            registry=self.registry,
        )

        self.events_rejected_total = Counter(
            "tracker_events_rejected_total",
            "Inbound coverage events that could not be decoded",
            registry=self.registry,
        )

        # Harvest and forwarding
        self.harvest_runs_total = Counter(
            "tracker_harvest_runs_total",
            "Local coverage harvest runs by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.events_forwarded_total = Counter(
            "tracker_events_forwarded_total",
            "Forwarded coverage events by delivery outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.forward_queue_depth = Gauge(
            "tracker_forward_queue_depth",
            "Serialized events waiting in the forwarder queue",
            registry=self.registry,
        )

    def record_event_ingested(self, event: str):
        """Record a persisted inbound event."""
        self.events_ingested_total.labels(event=event).inc()

    def mark_down(self):
        self.app_up.labels(service=self.service_name, version=self.version).set(0)
