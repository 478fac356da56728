import json

import httpx
import pytest

from gateway.schemas.analysis import AnalysisRequest
from gateway.services.analysis_service import (
    DEFAULT_GENERATION_CONFIGS,
    InvalidAnalysisRequest,
    build_analysis_prompt,
)


def _gemini(text: str) -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


SYLLABUS_REQUEST = {
    "type": "syllabus_tasks",
    "data": {
        "syllabusText": "Homework 1 due Sept 9. Midterm exam Oct 12.",
        "className": "CS101",
        "courseName": "Intro to Computing",
    },
}


def test_syllabus_prompt_uses_default_config():
    prompt, config = build_analysis_prompt(AnalysisRequest.model_validate(SYLLABUS_REQUEST))

    assert config == {"temperature": 0.1, "topK": 1, "topP": 0.8, "maxOutputTokens": 8192}
    assert "- Class Name: CS101" in prompt
    assert "Homework 1 due Sept 9." in prompt
    assert '"className": "CS101"' in prompt


def test_caller_config_overrides_defaults():
    request = AnalysisRequest.model_validate(
        {
            "type": "schedule_analysis",
            "data": {"tasks": [{"title": "Essay", "dueDate": "2024-10-01", "class": "EN102"}]},
            "config": {"temperature": 0.4, "maxOutputTokens": 512},
        }
    )

    prompt, config = build_analysis_prompt(request)

    assert config == {**DEFAULT_GENERATION_CONFIGS["schedule_analysis"], "temperature": 0.4, "maxOutputTokens": 512}
    assert "UPCOMING TASKS (1 total)" in prompt
    assert '"class": "EN102"' in prompt


def test_unknown_type_is_rejected():
    with pytest.raises(InvalidAnalysisRequest):
        build_analysis_prompt(AnalysisRequest(type="horoscope"))


def test_ai_analysis_returns_parsed_result(client, upstream):
    captured: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(json.loads(request.content))
        return _gemini('```json\n{"tasks": [{"title": "Midterm", "dueDate": "2024-10-12"}]}\n```')

    upstream.generation = handler

    response = client.post("/ai-analysis", json=SYLLABUS_REQUEST)

    assert response.status_code == 200
    assert response.json() == {"result": {"tasks": [{"title": "Midterm", "dueDate": "2024-10-12"}]}}
    assert captured[0]["generationConfig"]["maxOutputTokens"] == 8192


def test_unparseable_output_is_returned_raw(client, upstream):
    upstream.generation = lambda request: _gemini("I could not find any tasks.")

    response = client.post("/ai-analysis", json=SYLLABUS_REQUEST)

    assert response.status_code == 200
    assert response.json() == {"result": {"rawResponse": "I could not find any tasks."}}


def test_second_model_is_used_when_first_is_unavailable(client, upstream):
    urls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        urls.append(str(request.url))
        if "gemini-2.0-flash" in str(request.url):
            return httpx.Response(503)
        return _gemini('{"stressLevel": 3}')

    upstream.generation = handler

    response = client.post("/ai-analysis", json={"type": "schedule_analysis", "data": {"tasks": []}})

    assert response.status_code == 200
    assert response.json() == {"result": {"stressLevel": 3}}
    assert sum("gemini-2.0-flash" in url for url in urls) == 3
    assert "gemini-1.5-flash" in urls[-1]


def test_exhausted_models_report_analysis_failure(client, upstream):
    upstream.generation = lambda request: httpx.Response(500, text="boom")

    response = client.post("/ai-analysis", json=SYLLABUS_REQUEST)

    assert response.status_code == 500
    assert response.json()["error"] == "AI analysis failed"
    assert "HTTP 500" in response.json()["details"]


def test_invalid_type_over_http(client):
    response = client.post("/ai-analysis", json={"type": "horoscope", "data": {}})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid analysis type"}


def test_blocked_generation_is_reported_as_raw_response(client, upstream):
    upstream.generation = lambda request: httpx.Response(
        200,
        json={"candidates": [{"finishReason": "SAFETY"}], "usageMetadata": {"promptTokenCount": 40}},
    )

    response = client.post("/ai-analysis", json=SYLLABUS_REQUEST)

    assert response.status_code == 200
    result = response.json()["result"]
    assert list(result) == ["rawResponse"]
    assert "SAFETY" in result["rawResponse"]
