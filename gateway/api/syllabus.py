from fastapi import APIRouter, HTTPException

from gateway.schemas.syllabus import AnalyzeSyllabusRequest
from gateway.services.syllabus_service import enhance_syllabus

router = APIRouter(tags=["syllabus"])


@router.post("/analyze-syllabus")
def analyze_syllabus(payload: AnalyzeSyllabusRequest):
    if not payload.syllabus_text:
        raise HTTPException(status_code=400, detail="Missing syllabus text")

    enhanced = enhance_syllabus(payload.syllabus_text, payload.basic_info)
    return enhanced.model_dump(by_alias=True, exclude_none=True)
