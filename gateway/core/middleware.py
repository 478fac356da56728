"""Security middleware wrapped around every route.

Order per request: CORS preflight, origin gate, rate limit, handler. Security
headers are attached to every response the middleware produces or relays.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.types import ASGIApp

from gateway.core.logging import log_security_event
from gateway.core.rate_limit import RATE_LIMITS, RateLimitConfig, RateLimiter
from gateway.core.security import (
    SECURITY_HEADERS,
    OriginGate,
    get_client_ip,
    is_service_token,
)

logger = logging.getLogger(__name__)

ROUTE_CLASSES: dict[str, str] = {
    "/ask-chatbot": "ai",
    "/ai-analysis": "ai",
    "/embed-file": "upload",
    "/secure-import": "upload",
}


@dataclass(frozen=True, slots=True)
class RequestContext:
    origin: str | None
    client_ip: str
    method: str
    route_class: str


def route_class_for(path: str) -> str:
    return ROUTE_CLASSES.get(path.rstrip("/") or "/", "general")


def secure_response(
    response: Response,
    cors_headers: dict[str, str] | None = None,
) -> Response:
    response.headers.update(SECURITY_HEADERS)
    if cors_headers:
        response.headers.update(cors_headers)
    return response


class SecurityMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        origin_gate: OriginGate,
        limiter: RateLimiter,
        service_key: str = "",
        rate_limits: dict[str, RateLimitConfig] | None = None,
    ) -> None:
        super().__init__(app)
        self.origin_gate = origin_gate
        self.limiter = limiter
        self.service_key = service_key
        self.rate_limits = rate_limits or RATE_LIMITS

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        origin = request.headers.get("origin")
        cors_headers = self.origin_gate.cors_headers(origin)

        try:
            if request.method == "OPTIONS":
                if not cors_headers:
                    log_security_event("warn", "Blocked preflight from unauthorized origin", origin=origin)
                    return secure_response(PlainTextResponse("Forbidden", status_code=403))
                return secure_response(PlainTextResponse("ok"), cors_headers)

            if not cors_headers and not self._is_internal_call(request, origin):
                log_security_event(
                    "warn",
                    "Blocked request from unauthorized origin",
                    origin=origin,
                    path=request.url.path,
                )
                return secure_response(
                    JSONResponse({"error": "Unauthorized origin"}, status_code=403)
                )

            context = RequestContext(
                origin=origin,
                client_ip=get_client_ip(request.headers),
                method=request.method,
                route_class=route_class_for(request.url.path),
            )
            request.state.context = context

            config = self.rate_limits[context.route_class]
            decision = await self.limiter.check(context.client_ip, config)
            if not decision.allowed:
                now = datetime.now(timezone.utc).timestamp()
                retry_after = max(0, math.ceil(decision.reset_time - now))
                log_security_event(
                    "warn",
                    "Rate limit exceeded",
                    client_ip=context.client_ip,
                    route_class=context.route_class,
                )
                response = JSONResponse(
                    {"error": config.message, "retryAfter": retry_after},
                    status_code=429,
                    headers={
                        "Retry-After": str(retry_after),
                        "X-RateLimit-Limit": str(config.max),
                        "X-RateLimit-Remaining": str(decision.remaining),
                        "X-RateLimit-Reset": datetime.fromtimestamp(
                            decision.reset_time, tz=timezone.utc
                        ).isoformat(),
                    },
                )
                return secure_response(response, cors_headers)

            response = await call_next(request)
            return secure_response(response, cors_headers)
        except Exception:
            logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
            return secure_response(
                JSONResponse(
                    {"error": "Internal server error", "message": "An unexpected error occurred"},
                    status_code=500,
                ),
                cors_headers,
            )

    def _is_internal_call(self, request: Request, origin: str | None) -> bool:
        if origin:
            return False
        return is_service_token(request.headers.get("authorization"), self.service_key)
