import logging

import httpx

from gateway.core.config import Settings
from gateway.core.retry import RetryPolicy, post_with_retry

logger = logging.getLogger(__name__)


class EmbeddingServiceError(RuntimeError):
    pass


def _endpoint(settings: Settings) -> str:
    return settings.embedding_url_template.format(model=settings.embedding_model)


def _api_key(settings: Settings) -> str:
    key = settings.huggingface_api_key
    if not key:
        raise EmbeddingServiceError("HUGGINGFACE_API_KEY is not set.")
    return key


def _as_vector(data: object) -> list[float]:
    # Feature extraction answers either [..floats..] or [[..floats..]].
    if isinstance(data, list) and data and isinstance(data[0], list):
        data = data[0]
    if not isinstance(data, list) or not data:
        raise EmbeddingServiceError("Embedding service returned an empty vector")
    try:
        return [float(value) for value in data]
    except (TypeError, ValueError) as exc:
        raise EmbeddingServiceError("Embedding service returned a non-numeric vector") from exc


async def embed_text(
    client: httpx.AsyncClient,
    text: str,
    settings: Settings,
    policy: RetryPolicy | None = None,
) -> list[float]:
    """Embed one text as a normalised vector.

    Without a ``policy`` the call is made exactly once.
    """
    cleaned = text.strip()
    if not cleaned:
        raise EmbeddingServiceError("Text to embed is empty")

    policy = policy or RetryPolicy(max_attempts=1)
    try:
        response = await post_with_retry(
            client,
            _endpoint(settings),
            policy,
            headers={"Authorization": f"Bearer {_api_key(settings)}"},
            json={"inputs": cleaned, "normalize": True},
        )
    except httpx.HTTPError as exc:
        raise EmbeddingServiceError(f"Failed to call embedding service: {exc}") from exc

    if not response.is_success:
        raise EmbeddingServiceError(
            f"Embedding service error {response.status_code}: {response.text[:500]}"
        )

    try:
        data = response.json()
    except ValueError as exc:
        raise EmbeddingServiceError("Embedding service returned invalid JSON") from exc
    return _as_vector(data)


async def embed_query(client: httpx.AsyncClient, query: str, settings: Settings) -> list[float]:
    return await embed_text(client, query, settings)


async def embed_chunks(
    client: httpx.AsyncClient,
    chunks: list[str],
    settings: Settings,
) -> list[list[float]]:
    """Embed document chunks one by one, retrying overloaded responses."""
    policy = RetryPolicy(
        max_attempts=settings.retry_attempts,
        delay_seconds=settings.retry_delay_seconds,
        retryable_statuses=frozenset({503, 429}),
    )
    vectors: list[list[float]] = []
    for index, chunk in enumerate(chunks, start=1):
        vector = await embed_text(client, chunk, settings, policy=policy)
        logger.debug("Embedded chunk %d/%d (dimension %d)", index, len(chunks), len(vector))
        vectors.append(vector)
    return vectors
