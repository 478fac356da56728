from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from supabase import AsyncClient, acreate_client

from gateway.core.config import Settings

logger = logging.getLogger(__name__)

MATCH_DOCUMENTS_RPC = "match_documents"


class DocumentStoreError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class DocumentChunk:
    content: str
    similarity: float = 0.0


class DocumentStore:
    """Thin async wrapper over the Supabase tables, RPC and storage the gateway uses."""

    def __init__(self, client: AsyncClient) -> None:
        self.client = client

    @classmethod
    async def connect(cls, settings: Settings) -> DocumentStore:
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise DocumentStoreError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        client = await acreate_client(settings.supabase_url, settings.supabase_service_role_key)
        return cls(client)

    async def match_documents(
        self,
        query_embedding: list[float],
        class_id: str,
        match_count: int,
        match_threshold: float,
    ) -> list[DocumentChunk]:
        try:
            response = await self.client.rpc(
                MATCH_DOCUMENTS_RPC,
                {
                    "query_embedding": query_embedding,
                    "class_id_filter": class_id,
                    "match_count": match_count,
                    "match_threshold": match_threshold,
                },
            ).execute()
        except Exception as exc:
            raise DocumentStoreError(f"Failed to find matching documents: {exc}") from exc

        return [
            DocumentChunk(content=row["content"], similarity=float(row.get("similarity") or 0.0))
            for row in response.data or []
            if row.get("content")
        ]

    async def download(self, bucket: str, path: str) -> bytes:
        try:
            data = await self.client.storage.from_(bucket).download(path)
        except Exception as exc:
            raise DocumentStoreError(f"Failed to download {path} from {bucket}: {exc}") from exc
        if not data:
            raise DocumentStoreError("File not found in storage.")
        return data

    async def insert_document(
        self,
        class_id: str,
        file_name: str,
        content: str,
        embedding: list[float],
    ) -> None:
        try:
            await self.client.table("documents").insert(
                {
                    "class_id": class_id,
                    "file_name": file_name,
                    "content": content,
                    "embedding": embedding,
                }
            ).execute()
        except Exception as exc:
            raise DocumentStoreError(f"Database insert failed: {exc}") from exc

    async def insert_extraction(self, file_id: Any, text: str) -> Any:
        try:
            response = await self.client.table("document_extractions").insert(
                {
                    "file_id": file_id,
                    "extracted_text": text,
                    "extraction_date": datetime.now(timezone.utc).isoformat(),
                    "content_length": len(text),
                }
            ).execute()
        except Exception as exc:
            raise DocumentStoreError(f"Failed to store extracted text: {exc}") from exc
        rows = response.data or []
        return rows[0].get("id") if rows else None

    async def list_class_files(self, class_ids: list[str]) -> list[dict[str, Any]]:
        try:
            response = await (
                self.client.table("class_files")
                .select("id, name, path, class_id, type")
                .in_("class_id", class_ids)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as exc:
            raise DocumentStoreError(f"Failed to list class files: {exc}") from exc
        return list(response.data or [])
