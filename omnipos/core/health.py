"""
Liveness and readiness probes for the ledger service.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from typing import Dict, Any
from datetime import datetime
from enum import Enum
import time
import psutil

from omnipos.core.logging_config import get_logger
from omnipos.domain.models import Base
from omnipos.infrastructure.db import ping

logger = get_logger(__name__)

class HealthStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"

def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"

class ServiceHealth:
    def __init__(self, service_name: str, version: str, engine: Engine):
        self.service_name = service_name
        self.version = version
        self.engine = engine
        self.start_time = time.time()

    def create_health_router(self) -> APIRouter:
        router = APIRouter(tags=["health"])

        @router.get("/health", status_code=status.HTTP_200_OK)
        async def health_check() -> Dict[str, Any]:
            return {
                "status": HealthStatus.PASS,
                "service": self.service_name,
                "version": self.version,
                "uptime_seconds": time.time() - self.start_time,
                "timestamp": _now(),
            }

        @router.get("/health/live", status_code=status.HTTP_200_OK)
        async def liveness() -> Dict[str, Any]:
            return {"status": "alive"}

        @router.get("/health/ready")
        def readiness() -> JSONResponse:
            """Ready only when the ledger store answers; missing tables and memory pressure only warn"""
            checks = {
                "database:connectivity": self.check_database(),
                "database:schema": self.check_schema(),
                "system:memory": self.check_memory(),
            }
            overall = self.overall_status(checks)
            code = status.HTTP_503_SERVICE_UNAVAILABLE if overall == HealthStatus.FAIL else status.HTTP_200_OK
            return JSONResponse(
                status_code=code,
                content={
                    "status": overall,
                    "serviceId": self.service_name,
                    "version": self.version,
                    "checks": checks,
                    "timestamp": _now(),
                },
            )

        return router

    def check_database(self) -> Dict[str, Any]:
        try:
            start_time = time.time()
            ping(self.engine)
            return {
                "status": HealthStatus.PASS,
                "componentType": "datastore",
                "observedValue": f"{(time.time() - start_time) * 1000:.2f}",
                "observedUnit": "ms",
                "time": _now(),
            }
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {
                "status": HealthStatus.FAIL,
                "componentType": "datastore",
                "output": str(e),
                "time": _now(),
            }

    def check_schema(self) -> Dict[str, Any]:
        """Warns while migrations have not created every ledger table yet"""
        try:
            present = set(inspect(self.engine).get_table_names())
        except Exception as e:
            return {"status": HealthStatus.FAIL, "componentType": "datastore", "output": str(e), "time": _now()}
        missing = sorted(set(Base.metadata.tables) - present)
        result = {
            "status": HealthStatus.WARN if missing else HealthStatus.PASS,
            "componentType": "datastore",
            "time": _now(),
        }
        if missing:
            result["output"] = f"missing tables: {', '.join(missing)}"
        return result

    def check_memory(self) -> Dict[str, Any]:
        available_mb = psutil.virtual_memory().available / (1024 ** 2)
        return {
            "status": HealthStatus.WARN if available_mb < 100 else HealthStatus.PASS,
            "componentType": "system",
            "observedValue": f"{available_mb:.2f}",
            "observedUnit": "MB",
            "time": _now(),
        }

    @staticmethod
    def overall_status(checks: Dict[str, Dict[str, Any]]) -> HealthStatus:
        statuses = [check.get("status", HealthStatus.PASS) for check in checks.values()]
        if HealthStatus.FAIL in statuses:
            return HealthStatus.FAIL
        if HealthStatus.WARN in statuses:
            return HealthStatus.WARN
        return HealthStatus.PASS
