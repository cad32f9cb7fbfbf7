from datetime import datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from support_chat.core.config import settings
from support_chat.database import check_database_health

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check():
    """
    저장소 연결 상태를 포함한 서비스 상태

    MySQL에 연결할 수 없거나 설정된 Redis가 응답하지 않으면 503을 반환합니다.
    """
    db_health = await check_database_health()

    body = {
        "status": "healthy" if db_health["overall"] else "unhealthy",
        "timestamp": datetime.utcnow().isoformat(),
        "databases": {
            "mysql": "connected" if db_health["mysql"] else "disconnected",
            "redis": db_health["redis"],
        },
        "service": settings.app_name,
        "version": settings.version,
    }
    code = status.HTTP_200_OK if db_health["overall"] else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=body)


@router.get("/ready")
async def readiness_check():
    db_health = await check_database_health()
    if not db_health["overall"]:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "mysql": db_health["mysql"], "redis": db_health["redis"]},
        )
    return {"status": "ready"}


@router.get("/live")
async def liveness_check():
    return {"status": "alive", "timestamp": datetime.utcnow().isoformat()}
