import asyncio
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gateway.api import analysis, chat, health, imports, syllabus, upload
from gateway.core.config import Settings, get_settings
from gateway.core.logging import configure_logging
from gateway.core.middleware import SecurityMiddleware
from gateway.core.rate_limit import RateLimiter, build_rate_limiter
from gateway.core.security import OriginGate
from gateway.db.supabase import DocumentStore, DocumentStoreError


async def http_exception_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse({"error": "Invalid request body", "details": details}, status_code=400)


async def store_exception_handler(_: Request, exc: DocumentStoreError) -> JSONResponse:
    return JSONResponse(
        {"error": "Data store is not available", "details": str(exc)},
        status_code=500,
    )


def create_app(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    store: DocumentStore | None = None,
    limiter: RateLimiter | None = None,
) -> FastAPI:
    """Build the gateway; collaborators may be injected for tests."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    limiter = limiter or build_rate_limiter(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = http_client is None
        app.state.http_client = http_client or httpx.AsyncClient(
            timeout=settings.http_timeout_seconds
        )
        try:
            yield
        finally:
            if owns_client:
                await app.state.http_client.aclose()
            await limiter.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.store_lock = asyncio.Lock()
    app.state.limiter = limiter

    app.add_middleware(
        SecurityMiddleware,
        origin_gate=OriginGate(settings.environment),
        limiter=limiter,
        service_key=settings.supabase_service_role_key,
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(DocumentStoreError, store_exception_handler)

    app.include_router(health.router)
    app.include_router(chat.router)
    app.include_router(upload.router)
    app.include_router(analysis.router)
    app.include_router(imports.router)
    app.include_router(syllabus.router)
    return app


app = create_app()
