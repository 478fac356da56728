from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from gateway.core.config import Settings
from gateway.core.logging import log_security_event
from gateway.db.supabase import DocumentStore, DocumentStoreError
from gateway.schemas.ingestion import FileRecord
from gateway.services.chunking_service import chunk_text
from gateway.services.embedding_service import embed_chunks
from gateway.services.parser_service import (
    UnsupportedFileTypeError,
    detect_content_type,
    extract_text,
    validate_document_text,
)

logger = logging.getLogger(__name__)

SYLLABUS_BUCKET = "secure-syllabi"
MATERIALS_BUCKET = "class-materials"


class IngestionError(RuntimeError):
    def __init__(self, message: str, warnings: list[str] | None = None) -> None:
        super().__init__(message)
        self.warnings = warnings or []


@dataclass(slots=True)
class IngestionResult:
    file_name: str
    chunks_processed: int = 0
    content_length: int = 0
    extracted_text_id: object | None = None
    extracted_text: str | None = None
    warnings: list[str] = field(default_factory=list)
    skipped: bool = False


def bucket_for_path(path: str) -> str:
    if "/syllabi/" in path or "syllabus" in path.lower():
        return SYLLABUS_BUCKET
    return MATERIALS_BUCKET


async def ingest_file(
    record: FileRecord,
    store: DocumentStore,
    client: httpx.AsyncClient,
    settings: Settings,
) -> IngestionResult:
    """Download an uploaded class file, guard its text and index it as embedded chunks.

    Unsupported file types are skipped rather than treated as errors. Content
    that fails the guard raises ``IngestionError`` carrying the guard warnings.
    """
    bucket = bucket_for_path(record.path)
    log_security_event(
        "info",
        "File processing started",
        file_id=record.id,
        file_name=record.name,
        file_path=record.path,
        bucket=bucket,
        file_type=record.type,
    )

    raw_bytes = await store.download(bucket, record.path)
    content_type = detect_content_type(record.name, record.type)

    try:
        text = extract_text(raw_bytes, content_type)
    except UnsupportedFileTypeError:
        log_security_event(
            "info",
            "Unsupported file type skipped",
            file_id=record.id,
            file_name=record.name,
            file_type=content_type,
        )
        return IngestionResult(file_name=record.name, skipped=True)

    validation = validate_document_text(
        text,
        record.name,
        max_chars=settings.max_text_chars,
        min_chars=settings.min_chunk_chars,
    )
    if not validation.is_valid:
        log_security_event(
            "error",
            "Document content validation failed",
            file_id=record.id,
            file_name=record.name,
            warnings=validation.warnings,
        )
        raise IngestionError("Document content validation failed", validation.warnings)

    content = validation.sanitized_content
    chunks = chunk_text(
        content,
        chunk_size=settings.chunk_size,
        overlap=settings.chunk_overlap,
        min_chunk_chars=settings.min_chunk_chars,
    )
    logger.info("Chunked %s into %d chunks (%d chars)", record.name, len(chunks), len(content))

    vectors = await embed_chunks(client, chunks, settings)
    total = len(chunks)
    for index, (chunk, vector) in enumerate(zip(chunks, vectors), start=1):
        await store.insert_document(
            record.class_id,
            f"{record.name} (chunk {index}/{total})",
            chunk,
            vector,
        )

    result = IngestionResult(
        file_name=record.name,
        chunks_processed=total,
        content_length=len(content),
        warnings=validation.warnings,
    )
    try:
        result.extracted_text_id = await store.insert_extraction(record.id, content)
    except DocumentStoreError as exc:
        logger.warning("Could not store extracted text for %s: %s", record.name, exc)
    if result.extracted_text_id is None:
        result.extracted_text = content

    log_security_event(
        "info",
        "File processing completed successfully",
        file_id=record.id,
        file_name=record.name,
        total_chunks=total,
        bucket=bucket,
    )
    return result
