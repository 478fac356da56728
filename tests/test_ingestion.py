import asyncio

import httpx
import pytest

from gateway.schemas.ingestion import FileRecord
from gateway.services.ingestion_service import IngestionError, bucket_for_path, ingest_file

from conftest import make_settings

SYLLABUS_TEXT = (
    "Introduction to Databases course syllabus, spring semester. "
    "Professor Ada Lovelace. Each assignment has a due date listed below. "
) * 60

INTERNAL_HEADERS = {"Authorization": "Bearer service-role-key"}


def _record(**overrides) -> dict:
    record = {
        "id": "file-1",
        "name": "notes.txt",
        "path": "db101/notes.txt",
        "class_id": "db101",
        "type": "text/plain",
    }
    record.update(overrides)
    return record


def test_bucket_selection():
    assert bucket_for_path("db101/syllabi/week1.pdf") == "secure-syllabi"
    assert bucket_for_path("db101/Syllabus-2024.pdf") == "secure-syllabi"
    assert bucket_for_path("db101/lecture-notes.pdf") == "class-materials"


def test_embed_file_indexes_every_chunk(client, store, upstream):
    store.files[("class-materials", "db101/notes.txt")] = SYLLABUS_TEXT.encode()

    response = client.post("/embed-file", json={"record": _record()}, headers=INTERNAL_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["chunksProcessed"] == len(store.inserted) > 1
    assert body["contentLength"] == len(SYLLABUS_TEXT.strip())
    assert body["extractedTextId"] == "extraction-1"
    assert body["extractedText"] is None
    total = len(store.inserted)
    assert [row["file_name"] for row in store.inserted] == [
        f"notes.txt (chunk {index}/{total})" for index in range(1, total + 1)
    ]
    assert all(len(row["content"]) <= 2000 for row in store.inserted)
    assert all(row["embedding"] == [0.1, 0.2, 0.3] for row in store.inserted)


def test_embed_file_inlines_text_when_extraction_row_fails(client, store):
    store.files[("class-materials", "db101/notes.txt")] = SYLLABUS_TEXT.encode()
    store.extraction_fails = True

    response = client.post("/embed-file", json={"record": _record()}, headers=INTERNAL_HEADERS)

    assert response.status_code == 200
    assert response.json()["extractedTextId"] is None
    assert response.json()["extractedText"].startswith("Introduction to Databases")


def test_embed_file_requires_a_record(client):
    response = client.post("/embed-file", json={}, headers=INTERNAL_HEADERS)

    assert response.status_code == 400
    assert response.json() == {"error": "No file record provided"}


def test_unsupported_file_types_are_skipped(client, store):
    store.files[("class-materials", "db101/slides.pptx")] = b"PK\x03\x04binary"

    response = client.post(
        "/embed-file",
        json={"record": _record(name="slides.pptx", path="db101/slides.pptx", type=None)},
        headers=INTERNAL_HEADERS,
    )

    assert response.status_code == 200
    assert response.text == "ok - unsupported file type"
    assert store.inserted == []


def test_suspicious_content_is_rejected(client, store):
    payload = SYLLABUS_TEXT + "<script>steal()</script>"
    store.files[("class-materials", "db101/notes.txt")] = payload.encode()

    response = client.post("/embed-file", json={"record": _record()}, headers=INTERNAL_HEADERS)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Document content validation failed"
    assert "Suspicious content was removed for security" in body["warnings"]
    assert store.inserted == []


def test_missing_storage_object_reports_store_error(client):
    response = client.post("/embed-file", json={"record": _record()}, headers=INTERNAL_HEADERS)

    assert response.status_code == 500
    assert response.json()["error"] == "Data store is not available"


def test_embedding_overload_is_retried(store, upstream):
    store.files[("class-materials", "db101/notes.txt")] = SYLLABUS_TEXT[:1500].encode()
    responses = iter([httpx.Response(503), httpx.Response(429), httpx.Response(200, json=[[0.5, 0.5]])])
    upstream.embedding = lambda request: next(responses)
    settings = make_settings()

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
            return await ingest_file(FileRecord(**_record()), store, client, settings)

    result = asyncio.run(scenario())

    assert result.chunks_processed == 1
    assert store.inserted[0]["embedding"] == [0.5, 0.5]


def test_short_documents_are_invalid(store, upstream):
    store.files[("class-materials", "db101/notes.txt")] = b"too short"

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
            return await ingest_file(FileRecord(**_record()), store, client, make_settings())

    with pytest.raises(IngestionError):
        asyncio.run(scenario())
