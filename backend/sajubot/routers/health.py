from datetime import datetime, timezone
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..config import settings

router = APIRouter(tags=["health"])
logger = logging.getLogger("sajubot.health")


@router.get("/api/health")
def health():
    try:
        credentials = settings.required_credentials()
        payload = {
            **credentials,
            "app_env": settings.app_env,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": "healthy",
        }
        if not all(credentials.values()):
            payload["status"] = "unhealthy"
            payload["message"] = "Missing required environment variables"
            return JSONResponse(status_code=503, content=payload)
        return JSONResponse(status_code=200, content=payload)
    except Exception as exc:
        logger.exception("Health check failed")
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": str(exc) or "Unknown error",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
