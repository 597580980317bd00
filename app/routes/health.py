"""
Health check endpoints: liveness and readiness.
"""

import time

from fastapi import APIRouter, Depends

from app.config import Settings, get_settings
from app.db.pool import DatabasePoolManager, get_db
from app.features.communications.providers import get_delivery_config

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "parish-learning-backend"}


@router.get("/readyz")
async def readyz(
    db: DatabasePoolManager = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Readiness check covering the database pool and configuration."""
    checks = {}
    overall_ok = True

    # 1) Database pool
    t0 = time.time()
    db_health = await db.health_check()
    is_healthy = db_health.get("healthy", False)

    checks["database"] = {
        "ok": is_healthy,
        "latency_ms": round((time.time() - t0) * 1000, 1),
    }
    if "pool_stats" in db_health:
        checks["database"].update(db_health["pool_stats"])
    if not is_healthy:
        checks["database"]["error"] = db_health.get("error", "Database unhealthy")

    overall_ok = overall_ok and is_healthy

    # 2) Configuration
    config_issues = []
    if not settings.SUPABASE_DB_URL:
        config_issues.append("SUPABASE_DB_URL not set")
    if not settings.AUTH_JWKS_URL:
        config_issues.append("AUTH_JWKS_URL not set")

    delivery = get_delivery_config(settings)
    if delivery.enabled and not settings.PARISH_COMMUNICATIONS_WORKER_TOKEN:
        config_issues.append("PARISH_COMMUNICATIONS_WORKER_TOKEN not set")

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
        "delivery_provider": delivery.provider,
    }
    overall_ok = overall_ok and not config_issues

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
