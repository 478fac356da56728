from __future__ import annotations

import logging
from dataclasses import dataclass, field

from gateway.core.config import Settings
from gateway.db.supabase import DocumentChunk, DocumentStore, DocumentStoreError

logger = logging.getLogger(__name__)

DOCUMENT_SEPARATOR = "\n\n---\n\n"


@dataclass(slots=True)
class RetrievalResult:
    documents: list[DocumentChunk] = field(default_factory=list)
    context_text: str = ""
    class_summary: str = ""

    @property
    def has_documents(self) -> bool:
        return bool(self.documents)


async def _retrieve_single_class(
    store: DocumentStore,
    query_embedding: list[float],
    class_id: str,
    settings: Settings,
) -> RetrievalResult:
    documents = await store.match_documents(
        query_embedding,
        class_id,
        match_count=settings.match_count,
        match_threshold=settings.match_threshold,
    )
    logger.info("Found %d matching documents for class %s", len(documents), class_id)
    return RetrievalResult(
        documents=documents,
        context_text=DOCUMENT_SEPARATOR.join(doc.content for doc in documents),
    )


async def _retrieve_many_classes(
    store: DocumentStore,
    query_embedding: list[float],
    class_ids: list[str],
    settings: Settings,
    class_names: list[str] | None = None,
) -> RetrievalResult:
    per_class: dict[str, list[DocumentChunk]] = {}
    for class_id in class_ids:
        try:
            documents = await store.match_documents(
                query_embedding,
                class_id,
                match_count=settings.multi_class_match_count,
                match_threshold=settings.match_threshold,
            )
        except DocumentStoreError as exc:
            # One broken class must not hide the others.
            logger.warning("Skipping class %s during retrieval: %s", class_id, exc)
            continue
        if documents:
            per_class[class_id] = documents

    sections = [
        f"Documents from class {class_id}:\n" + "\n\n".join(doc.content for doc in documents)
        for class_id, documents in per_class.items()
    ]
    names = class_names or class_ids
    result = RetrievalResult(
        documents=[doc for documents in per_class.values() for doc in documents],
        context_text=DOCUMENT_SEPARATOR.join(sections),
        class_summary=f"Searching across {len(class_ids)} classes: {', '.join(names)}",
    )
    logger.info(
        "Found %d documents from %d classes", len(result.documents), len(class_ids)
    )
    return result


async def retrieve_documents(
    store: DocumentStore,
    query_embedding: list[float],
    class_ids: list[str],
    settings: Settings,
    class_names: list[str] | None = None,
) -> RetrievalResult:
    """Vector search scoped to one or more classes.

    A single class uses the full match count and lets store errors propagate;
    several classes use a smaller per-class count and skip classes that fail.
    """
    if not class_ids:
        logger.info("No class ids provided; skipping retrieval")
        return RetrievalResult()
    if len(class_ids) == 1:
        return await _retrieve_single_class(store, query_embedding, class_ids[0], settings)
    return await _retrieve_many_classes(store, query_embedding, class_ids, settings, class_names)
