"""
Health checks for liveness and readiness probes.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any
import time
import psutil
from .store import ActionStore
from .logging import get_logger
from .version import SERVICE_NAME, VERSION

logger = get_logger()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class HealthChecker:
    """
    Health checker for the tracker service.

    Provides:
    - Liveness checks (is the service running?)
    - Readiness checks (can the action store take writes?)
    """

    def __init__(self, store: ActionStore, service_name: str = SERVICE_NAME, version: str = VERSION):
        self.store = store
        self.service_name = service_name
        self.version = version

    def liveness(self) -> Dict[str, Any]:
        """
        Liveness check - basic health check.

        Returns:
            dict: Health status with service info and timestamp
        """
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": _now(),
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check.

        Checks:
        - Action store answers queries
        - Disk space where the database file lives

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {
            "store": await self._check_store(),
            "disk_space": self._check_disk_space(),
        }
        overall_status = "ready"
        if any(check["status"] == "error" for check in checks.values()):
            overall_status = "not_ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": _now(),
            "checks": checks,
        }

    async def _check_store(self) -> Dict[str, Any]:
        start = time.time()
        if not await self.store.health_check():
            return {"status": "error", "db_name": self.store.db_name}
        return {
            "status": "ok",
            "db_name": self.store.db_name,
            "latency_ms": round((time.time() - start) * 1000, 2),
        }

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space on the database volume.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)
        """
        if self.store.db_name == ":memory:":
            return {"status": "skipped", "message": "in-memory database"}

        try:
            directory = Path(self.store.db_name).resolve().parent
            disk = psutil.disk_usage(str(directory))
            available_gb = disk.free / (1024**3)

            if available_gb < threshold_gb:
                status = "error"
            elif available_gb < threshold_gb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_gb": round(available_gb, 2),
                "total_gb": round(disk.total / (1024**3), 2),
                "used_percent": disk.percent,
            }

        except OSError as e:
            logger.warning("disk_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }
