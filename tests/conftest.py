from collections.abc import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from gateway.core.config import Settings
from gateway.core.rate_limit import InMemoryRateLimiter
from gateway.db.supabase import DocumentChunk, DocumentStoreError
from gateway.main import create_app

ALLOWED_ORIGIN = "http://localhost:3000"


class FakeStore:
    """In-memory stand-in for ``DocumentStore``."""

    def __init__(self) -> None:
        self.documents: dict[str, list[DocumentChunk]] = {}
        self.class_files: list[dict] = []
        self.files: dict[tuple[str, str], bytes] = {}
        self.inserted: list[dict] = []
        self.extractions: list[dict] = []
        self.failing_classes: set[str] = set()
        self.match_calls: list[dict] = []
        self.extraction_fails = False

    def add_document(self, class_id: str, content: str, similarity: float = 0.9) -> None:
        self.documents.setdefault(class_id, []).append(DocumentChunk(content, similarity))

    async def match_documents(self, query_embedding, class_id, match_count, match_threshold):
        self.match_calls.append(
            {"class_id": class_id, "match_count": match_count, "match_threshold": match_threshold}
        )
        if class_id in self.failing_classes:
            raise DocumentStoreError(f"rpc failed for {class_id}")
        return list(self.documents.get(class_id, []))[:match_count]

    async def download(self, bucket, path):
        try:
            return self.files[(bucket, path)]
        except KeyError:
            raise DocumentStoreError("File not found in storage.") from None

    async def insert_document(self, class_id, file_name, content, embedding):
        self.inserted.append(
            {"class_id": class_id, "file_name": file_name, "content": content, "embedding": embedding}
        )
        self.add_document(class_id, content)

    async def insert_extraction(self, file_id, text):
        if self.extraction_fails:
            raise DocumentStoreError("extractions table unavailable")
        self.extractions.append({"file_id": file_id, "text": text})
        return f"extraction-{len(self.extractions)}"

    async def list_class_files(self, class_ids):
        return [row for row in self.class_files if row["class_id"] in class_ids]


class Upstream:
    """Routes mocked provider calls by URL and records every request."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.embedding: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200, json=[0.1, 0.2, 0.3]
        )
        self.generation: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200, json=[{"generated_text": "Generated answer"}]
        )
        self.status: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200, json={"state": "Loadable", "loaded": True}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if "feature-extraction" in url:
            return self.embedding(request)
        if "/status/" in url:
            return self.status(request)
        return self.generation(request)

    def generation_requests(self) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == "POST" and "feature-extraction" not in str(request.url)
        ]


def make_settings(**overrides) -> Settings:
    values = {
        "environment": "development",
        "supabase_url": "https://project.supabase.co",
        "supabase_service_role_key": "service-role-key",
        "supabase_jwt_secret": "jwt-test-secret",
        "huggingface_api_key": "hf-test-key",
        "google_api_key": "google-test-key",
        "retry_delay_seconds": 0.0,
        "model_loading_delay_seconds": 0.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def http_client(upstream: Upstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream))


@pytest.fixture
def client(settings, store, http_client):
    app = create_app(
        settings=settings,
        http_client=http_client,
        store=store,
        limiter=InMemoryRateLimiter(sweep_probability=0.0),
    )
    with TestClient(app, headers={"Origin": ALLOWED_ORIGIN}) as test_client:
        yield test_client
