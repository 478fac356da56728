import httpx
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from gateway.core.config import Settings
from gateway.db.session import get_app_settings, get_http_client, get_store
from gateway.db.supabase import DocumentStore
from gateway.schemas.ingestion import EmbedFileRequest, EmbedFileResponse
from gateway.services.embedding_service import EmbeddingServiceError
from gateway.services.ingestion_service import IngestionError, ingest_file
from gateway.services.parser_service import FileParsingError

router = APIRouter(tags=["ingestion"])

UNSUPPORTED_FILE_MESSAGE = "ok - unsupported file type"


@router.post("/embed-file", response_model=EmbedFileResponse)
async def embed_file(
    payload: EmbedFileRequest,
    store: DocumentStore = Depends(get_store),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    if payload.record is None:
        raise HTTPException(status_code=400, detail="No file record provided")

    try:
        result = await ingest_file(payload.record, store, client, settings)
    except IngestionError as exc:
        raise HTTPException(status_code=400, detail={"error": str(exc), "warnings": exc.warnings}) from exc
    except FileParsingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except EmbeddingServiceError as exc:
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to embed document", "details": str(exc)},
        ) from exc

    if result.skipped:
        return PlainTextResponse(UNSUPPORTED_FILE_MESSAGE)

    return EmbedFileResponse(
        message=f"Successfully processed {result.file_name} into {result.chunks_processed} chunks",
        chunks_processed=result.chunks_processed,
        content_length=result.content_length,
        extracted_text_id=result.extracted_text_id,
        extracted_text=result.extracted_text,
    )
