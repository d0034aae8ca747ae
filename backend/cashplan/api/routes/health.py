from fastapi import APIRouter

from cashplan.config import settings
from cashplan.core.observability import uptime_seconds, utc_now_iso

router = APIRouter(prefix="/health", tags=["health"])


def health_payload() -> dict:
    """Shared by the prefixed route and the bare ``/healthz`` endpoint in ``main``."""
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "time": utc_now_iso(),
        "uptime_seconds": round(uptime_seconds(), 2),
        "version": settings.build_version,
    }


@router.get("", summary="Healthcheck")
def healthcheck():
    """Liveness check for monitoring systems."""
    return health_payload()
