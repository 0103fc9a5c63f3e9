from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from carmarket.core.config import settings
from carmarket.database import check_database_health
from carmarket.utils.time_utils import utc_now

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request):
    """Application health check endpoint"""
    db_health = await check_database_health()
    feed = getattr(request.app.state, "feed", None)

    body = {
        "status": "healthy" if db_health["overall"] else "unhealthy",
        "timestamp": utc_now().isoformat(),
        "databases": {
            "database": "connected" if db_health["database"] else "disconnected",
            "redis": "connected" if db_health["redis"] else "disconnected"
        },
        "realtime_subscriptions": feed.subscription_count if feed is not None else 0,
        "service": settings.app_name
    }

    status_code = status.HTTP_200_OK if db_health["overall"] else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=body)


@router.get("/health/live")
async def liveness_check():
    """Liveness check endpoint"""
    return {"status": "alive", "timestamp": utc_now().isoformat()}
