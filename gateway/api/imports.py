from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from gateway.core.security import get_current_user
from gateway.schemas.imports import ImportRequest, ImportResponse
from gateway.services.import_service import ImportValidationError, validate_import

router = APIRouter(tags=["import"])


@router.post("/secure-import", response_model=ImportResponse)
def secure_import(
    payload: ImportRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
):
    try:
        return validate_import(payload, user_id=current_user.get("sub"))
    except ImportValidationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_body()) from exc
