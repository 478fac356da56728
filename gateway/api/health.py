from fastapi import APIRouter, Depends

from gateway.core.config import Settings
from gateway.db.session import get_app_settings

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def health_check(settings: Settings = Depends(get_app_settings)):
    return {"status": "ok", "service": settings.app_name, "environment": settings.environment}
