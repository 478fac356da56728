from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

from gateway.core.config import Settings
from gateway.core.retry import RetryPolicy, post_with_retry

logger = logging.getLogger(__name__)

Provider = Literal["huggingface", "gemini"]


class LLMServiceError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class ModelCandidate:
    provider_id: str
    provider: Provider
    endpoint: str
    generation_params: dict[str, Any] = field(default_factory=dict)
    status_endpoint: str | None = None


@dataclass(slots=True)
class GenerationResult:
    candidate: ModelCandidate
    raw: Any
    candidates_tried: int


def chat_candidates(settings: Settings) -> tuple[ModelCandidate, ...]:
    params = {
        "max_new_tokens": settings.chat_max_new_tokens,
        "temperature": settings.chat_temperature,
        "return_full_text": False,
    }
    return tuple(
        ModelCandidate(
            provider_id=model,
            provider="huggingface",
            endpoint=settings.chat_model_url_template.format(model=model),
            generation_params=params,
            status_endpoint=settings.chat_model_status_url_template.format(model=model),
        )
        for model in settings.chat_models
    )


def analysis_candidates(
    settings: Settings,
    generation_config: dict[str, Any],
) -> tuple[ModelCandidate, ...]:
    return tuple(
        ModelCandidate(
            provider_id=model,
            provider="gemini",
            endpoint=settings.gemini_url_template.format(model=model),
            generation_params=generation_config,
        )
        for model in settings.analysis_models
    )


def chat_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.retry_attempts,
        delay_seconds=settings.retry_delay_seconds,
        retryable_statuses=frozenset({503, 429}),
        poll_readiness=True,
        loading_delay_seconds=settings.model_loading_delay_seconds,
    )


def analysis_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.retry_attempts,
        delay_seconds=settings.retry_delay_seconds,
        retryable_statuses=frozenset({503}),
        poll_readiness=False,
    )


def _build_request(
    candidate: ModelCandidate,
    prompt: str,
    settings: Settings,
) -> tuple[dict[str, str], dict[str, Any]]:
    if candidate.provider == "gemini":
        headers = {"x-goog-api-key": settings.google_api_key}
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": candidate.generation_params,
            "safetySettings": [
                {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
                {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
            ],
        }
        return headers, payload

    headers = {"Authorization": f"Bearer {settings.huggingface_api_key}"}
    payload = {
        "inputs": prompt,
        "parameters": candidate.generation_params,
        "options": {"wait_for_model": True},
    }
    return headers, payload


def _api_key_for(candidate: ModelCandidate, settings: Settings) -> str:
    if candidate.provider == "gemini":
        return settings.google_api_key
    return settings.huggingface_api_key


async def wait_until_ready(
    client: httpx.AsyncClient,
    candidate: ModelCandidate,
    policy: RetryPolicy,
    settings: Settings,
) -> None:
    """Poll the candidate's status endpoint and wait once if it is loading.

    Readiness is advisory; status-endpoint failures are logged and ignored.
    """
    if not policy.poll_readiness or not candidate.status_endpoint:
        return
    try:
        response = await client.get(
            candidate.status_endpoint,
            headers={"Authorization": f"Bearer {_api_key_for(candidate, settings)}"},
        )
    except httpx.HTTPError as exc:
        logger.warning("Status check for %s failed: %s", candidate.provider_id, exc)
        return
    if not response.is_success:
        logger.info("Status check for %s returned %s", candidate.provider_id, response.status_code)
        return

    try:
        status = response.json()
    except ValueError:
        return
    state = str(status.get("state", "")).lower() if isinstance(status, dict) else ""
    if state == "loading" or (isinstance(status, dict) and status.get("loaded") is False):
        logger.info(
            "Model %s is loading, waiting %.1fs before requesting",
            candidate.provider_id,
            policy.loading_delay_seconds,
        )
        await asyncio.sleep(policy.loading_delay_seconds)


async def generate_with_fallback(
    client: httpx.AsyncClient,
    candidates: tuple[ModelCandidate, ...] | list[ModelCandidate],
    prompt: str,
    policy: RetryPolicy,
    settings: Settings,
) -> GenerationResult:
    """Try each candidate in order and return the first successful raw response.

    Raises ``LLMServiceError`` once every candidate has failed.
    """
    failures: list[str] = []
    for candidate in candidates:
        if not _api_key_for(candidate, settings):
            failures.append(f"{candidate.provider_id}: missing API key")
            logger.warning("Skipping %s: no API key configured for %s", candidate.provider_id, candidate.provider)
            continue

        await wait_until_ready(client, candidate, policy, settings)
        headers, payload = _build_request(candidate, prompt, settings)
        try:
            response = await post_with_retry(
                client,
                candidate.endpoint,
                policy,
                headers=headers,
                json=payload,
            )
        except httpx.HTTPError as exc:
            failures.append(f"{candidate.provider_id}: {exc.__class__.__name__}")
            logger.warning("Model %s request failed: %s", candidate.provider_id, exc)
            continue

        if response.is_success:
            try:
                raw = response.json()
            except ValueError:
                raw = response.text
            logger.info("Model %s answered with status %s", candidate.provider_id, response.status_code)
            return GenerationResult(candidate=candidate, raw=raw, candidates_tried=len(failures) + 1)

        failures.append(f"{candidate.provider_id}: HTTP {response.status_code}")
        logger.warning(
            "Model %s failed with status %s: %s",
            candidate.provider_id,
            response.status_code,
            response.text[:300],
        )

    raise LLMServiceError("All model candidates failed: " + "; ".join(failures))
