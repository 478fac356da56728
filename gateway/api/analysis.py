import httpx
from fastapi import APIRouter, Depends, HTTPException

from gateway.core.config import Settings
from gateway.db.session import get_app_settings, get_http_client
from gateway.schemas.analysis import AnalysisRequest, AnalysisResponse
from gateway.services.analysis_service import AnalysisError, InvalidAnalysisRequest, run_analysis

router = APIRouter(tags=["analysis"])


@router.post("/ai-analysis", response_model=AnalysisResponse)
async def ai_analysis(
    payload: AnalysisRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    try:
        result = await run_analysis(payload, client, settings)
    except InvalidAnalysisRequest as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except AnalysisError as exc:
        raise HTTPException(
            status_code=500,
            detail={"error": "AI analysis failed", "details": str(exc)},
        ) from exc

    return AnalysisResponse(result=result)
