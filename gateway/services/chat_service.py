from __future__ import annotations

import asyncio
import logging
import re

import httpx

from gateway.core.config import Settings
from gateway.core.security import sanitize_string, validate_input
from gateway.db.supabase import DocumentStore, DocumentStoreError
from gateway.schemas.chat import ChatRequest, ConversationMessage, MentionContext
from gateway.schemas.ingestion import FileRecord
from gateway.services.embedding_service import EmbeddingServiceError, embed_query
from gateway.services.ingestion_service import ingest_file
from gateway.services.llm_service import (
    LLMServiceError,
    chat_candidates,
    chat_retry_policy,
    generate_with_fallback,
)
from gateway.services.response_extractor import ANSWER_MARKER, extract_answer
from gateway.services.retrieval_service import RetrievalResult, retrieve_documents

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 500

_FOLLOW_UP_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^(are you sure|really|what do you mean|can you explain|explain more|tell me more|how so|why|elaborate)",
        r"^(what about|what if|but what|and what|or what)",
        r"^(that doesn't|that seems|i don't understand|unclear|confusing)",
        r"^(can you clarify|clarify|rephrase|simplify)",
        r"^(expand on|go deeper|more details|more info)",
        r"^(yes but|no but|however|although|still)",
        r"^(correct|right|wrong|true|false)\?*$",
        r"^(ok|okay|i see|got it|thanks|thank you)[.?!]*$",
    )
)
_REFERENCE_PATTERNS = (
    re.compile(r"\b(this|that|it|they|them|these|those)\b", re.IGNORECASE),
    re.compile(r"\b(your answer|your response|what you said|you mentioned)\b", re.IGNORECASE),
)
_QUESTION_WORDS = ("how", "why", "what", "when", "where", "which", "who")


class ChatPipelineError(RuntimeError):
    pass


class InvalidQueryError(ValueError):
    pass


def is_follow_up_question(query: str, has_history: bool) -> bool:
    if not has_history:
        return False

    stripped = query.strip()
    normalized = stripped.lower()
    if len(normalized) < 20:
        return True
    if any(pattern.search(stripped) for pattern in _FOLLOW_UP_PATTERNS):
        return True
    if normalized.startswith(_QUESTION_WORDS) and any(
        pattern.search(stripped) for pattern in _REFERENCE_PATTERNS
    ):
        return True
    return len(normalized) < 15 and "?" in normalized


def format_history(history: list[ConversationMessage], turns: int) -> str:
    recent = history[-turns:] if turns > 0 else []
    return "\n".join(
        f"{'User' if message.role == 'user' else 'Assistant'}: {message.content}"
        for message in recent
    )


def _mention_note(mention: MentionContext | None) -> str:
    if not mention or not mention.has_mentions:
        return ""
    names = ", ".join(item.name for item in mention.mentioned_classes)
    target = "a specific class" if len(mention.mentioned_classes) == 1 else "specific classes"
    return f"\n\nNote: The student used @mentions to specify {target}: {names}."


def build_prompt(
    query: str,
    retrieval: RetrievalResult,
    history_text: str,
    follow_up: bool,
    mention: MentionContext | None = None,
) -> str:
    """Compose the generation prompt; every variant ends with the answer marker."""
    if follow_up and history_text:
        materials = (
            f"Additional course material context (use if relevant):\n---\n{retrieval.context_text}\n---\n\n"
            if retrieval.has_documents
            else ""
        )
        return (
            "You are an intelligent academic assistant helping a student. "
            "The student is asking a follow-up question to continue our conversation.\n\n"
            f"Previous conversation:\n{history_text}\n\n"
            f"{materials}"
            f"Current follow-up question: {query}\n\n"
            "Please respond to the student's follow-up question by:\n"
            "1. Referencing our previous conversation\n"
            "2. Providing clarification, elaboration, or addressing their concerns\n"
            "3. Being conversational and helpful\n"
            "4. Using course materials only if they add value to your response\n\n"
            f"{ANSWER_MARKER}"
        )

    history_block = f"Previous conversation for context:\n{history_text}\n\n" if history_text else ""
    if retrieval.has_documents:
        mentioned = bool(mention and mention.has_mentions)
        header = (
            f"Course materials from {retrieval.class_summary}:"
            if mentioned and retrieval.class_summary
            else "Course materials:"
        )
        focus = "Focus on the mentioned classes when relevant. " if mentioned else ""
        return (
            "You are an intelligent academic assistant. "
            "Answer the student's question using the provided course materials.\n\n"
            f"{history_block}{header}\n---\n{retrieval.context_text}\n---\n\n"
            f"Current question: {query}{_mention_note(mention)}\n\n"
            f"Please provide a helpful answer based on the course materials. {focus}"
            "If the materials don't contain the specific information needed, let the student "
            "know what you found and suggest they might need additional resources.\n\n"
            f"{ANSWER_MARKER}"
        )

    return (
        "You are an intelligent academic assistant. The student is asking a question, "
        "but I don't have specific course materials that directly address this topic.\n\n"
        f"{history_block}Current question: {query}\n\n"
        "Please provide a helpful response by:\n"
        "1. Using any relevant information from our conversation history\n"
        "2. Providing general academic guidance if appropriate\n"
        "3. Suggesting the student upload relevant course materials if this is a course-specific question\n"
        "4. Being honest about the limitations while still being helpful\n\n"
        f"{ANSWER_MARKER}"
    )


def no_documents_message(class_ids: list[str], class_summary: str = "") -> str:
    if len(class_ids) > 1:
        return (
            "I don't have any documents to reference for the classes you mentioned "
            f"({class_summary}). Please upload course materials for these classes first."
        )
    if class_ids:
        return (
            "I don't have any documents to reference for this class yet. "
            "Please upload some course materials first."
        )
    return "Please select a class or use @ClassName to specify which class to ask about."


def auto_embed_message(query: str, embedded: int, total: int) -> str:
    if embedded:
        return (
            f"I processed {embedded} file(s) for your class(es), but couldn't find content "
            f"relevant to your question. The files may not contain information about \"{query}\". "
            "Try asking about topics specifically covered in your uploaded materials."
        )
    return (
        f"I found {total} uploaded file(s) for your class(es), but encountered issues processing "
        "them for search. Please try re-uploading your course materials or contact support if "
        "the problem persists."
    )


def fallback_answer(retrieval: RetrievalResult) -> str:
    if not retrieval.has_documents:
        return "The AI service is currently unavailable. Please try again in a few minutes."
    excerpt = retrieval.documents[0].content[:EXCERPT_CHARS].strip()
    return (
        "The AI service is currently unavailable, so I can't compose a full answer right now. "
        "Here is the most relevant excerpt from your course materials:\n\n"
        f"{excerpt}"
    )


async def _auto_embed_class_files(
    files: list[dict],
    store: DocumentStore,
    client: httpx.AsyncClient,
    settings: Settings,
) -> int:
    records: list[FileRecord] = []
    for row in files:
        try:
            records.append(FileRecord.model_validate(row))
        except ValueError as exc:
            logger.warning("Skipping malformed class file row %s: %s", row.get("id"), exc)

    outcomes = await asyncio.gather(
        *(ingest_file(record, store, client, settings) for record in records),
        return_exceptions=True,
    )
    embedded = 0
    for record, outcome in zip(records, outcomes):
        if isinstance(outcome, Exception):
            logger.error("Auto-embedding %s failed: %s", record.name, outcome)
        elif not outcome.skipped:
            embedded += 1
    logger.info("Auto-embedding completed: %d/%d files embedded", embedded, len(files))
    return embedded


async def answer_question(
    request: ChatRequest,
    store: DocumentStore,
    client: httpx.AsyncClient,
    settings: Settings,
) -> str:
    """Answer a student question from the indexed materials of the selected classes.

    Upstream model failures degrade to an excerpt answer; only query embedding
    and single-class retrieval failures raise ``ChatPipelineError``.
    """
    query = sanitize_string(request.query)
    if not validate_input(query, "query"):
        raise InvalidQueryError("Query must be between 1 and 1000 characters")

    class_ids = request.target_class_ids()
    class_names = (
        [item.name for item in request.mention_context.mentioned_classes]
        if request.mention_context and request.mention_context.mentioned_classes
        else None
    )
    history = request.conversation_history

    try:
        query_embedding = await embed_query(client, query, settings)
    except EmbeddingServiceError as exc:
        raise ChatPipelineError(f"Failed to get embedding: {exc}") from exc

    async def retrieve() -> RetrievalResult:
        try:
            return await retrieve_documents(store, query_embedding, class_ids, settings, class_names)
        except DocumentStoreError as exc:
            raise ChatPipelineError(str(exc)) from exc

    retrieval = await retrieve()

    if not retrieval.has_documents and not history:
        files: list[dict] = []
        if class_ids:
            try:
                files = await store.list_class_files(class_ids)
            except DocumentStoreError as exc:
                logger.error("Could not check class files: %s", exc)

        if not files:
            logger.info("No documents and no uploaded files for classes %s", class_ids)
            return no_documents_message(class_ids, retrieval.class_summary)

        logger.info("Found %d uploaded files without embeddings; embedding now", len(files))
        embedded = await _auto_embed_class_files(files, store, client, settings)
        if embedded:
            retrieval = await retrieve()
        if not retrieval.has_documents:
            return auto_embed_message(query, embedded, len(files))

    history_text = format_history(history, settings.history_turns)
    follow_up = is_follow_up_question(query, bool(history))
    logger.info(
        "Answering query: follow_up=%s documents=%d history=%d classes=%d",
        follow_up,
        len(retrieval.documents),
        len(history),
        len(class_ids),
    )
    prompt = build_prompt(query, retrieval, history_text, follow_up, request.mention_context)

    try:
        result = await generate_with_fallback(
            client,
            chat_candidates(settings),
            prompt,
            chat_retry_policy(settings),
            settings,
        )
    except LLMServiceError as exc:
        logger.error("Answer generation exhausted every model: %s", exc)
        return fallback_answer(retrieval)

    return extract_answer(result.raw)
