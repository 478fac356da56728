import httpx
from fastapi import APIRouter, Depends, HTTPException

from gateway.core.config import Settings
from gateway.db.session import get_app_settings, get_http_client, get_store
from gateway.db.supabase import DocumentStore
from gateway.schemas.chat import ChatRequest, ChatResponse
from gateway.services.chat_service import ChatPipelineError, InvalidQueryError, answer_question

router = APIRouter(tags=["chat"])


@router.post("/ask-chatbot", response_model=ChatResponse)
async def ask_chatbot(
    payload: ChatRequest,
    store: DocumentStore = Depends(get_store),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    try:
        answer = await answer_question(payload, store, client, settings)
    except InvalidQueryError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ChatPipelineError as exc:
        raise HTTPException(
            status_code=500,
            detail={"error": str(exc), "details": repr(exc.__cause__ or exc)},
        ) from exc

    return ChatResponse(answer=answer)
