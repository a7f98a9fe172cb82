"""Service identity reported by logs, metrics and health checks."""

SERVICE_NAME = "tracker"
VERSION = "0.1.0"
