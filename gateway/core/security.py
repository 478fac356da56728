from __future__ import annotations

import hmac
import re
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from gateway.core.config import Settings

PRODUCTION_ORIGINS: tuple[str, ...] = (
    "https://schedulebudapp.com",
    "https://www.schedulebudapp.com",
)
STAGING_ORIGINS: tuple[str, ...] = ("https://staging.schedulebudapp.com",)
PREVIEW_ORIGIN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^https://.*\.northflank\.app$"),
)
DEVELOPMENT_ORIGINS: tuple[str, ...] = (
    "http://localhost:8080",
    "http://127.0.0.1:8080",
    "http://localhost:3000",
)

CLIENT_IP_HEADERS: tuple[str, ...] = (
    "x-forwarded-for",
    "x-real-ip",
    "x-client-ip",
    "cf-connecting-ip",
)

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

_CORS_BASE_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, x-requested-with",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Max-Age": "86400",
    "Access-Control-Allow-Credentials": "true",
}

VALIDATION_PATTERNS: dict[str, re.Pattern[str]] = {
    "email": re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"),
    "uuid": re.compile(r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$", re.IGNORECASE),
    "task_title": re.compile(r"^.{1,500}$"),
    "file_name": re.compile(r"^[a-zA-Z0-9._-]{1,255}$"),
    "class_name": re.compile(r"^.{1,100}$"),
    "query": re.compile(r"^.{1,1000}$", re.DOTALL),
}

_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_JAVASCRIPT_URI = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)


class OriginGate:
    """Allowlist of request origins for one deployment environment."""

    def __init__(self, environment: str) -> None:
        self.environment = environment
        self.exact, self.patterns = allowed_origins_for(environment)

    def is_allowed(self, origin: str | None) -> bool:
        if not origin:
            return False
        if origin in self.exact:
            return True
        return any(pattern.match(origin) for pattern in self.patterns)

    def cors_headers(self, origin: str | None) -> dict[str, str]:
        """CORS headers for ``origin``; empty when the origin is not allowed."""
        if not self.is_allowed(origin):
            return {}
        return {**_CORS_BASE_HEADERS, "Access-Control-Allow-Origin": origin}


def allowed_origins_for(environment: str) -> tuple[frozenset[str], tuple[re.Pattern[str], ...]]:
    if environment == "production":
        return frozenset(PRODUCTION_ORIGINS), ()
    if environment == "staging":
        return frozenset(STAGING_ORIGINS + DEVELOPMENT_ORIGINS), PREVIEW_ORIGIN_PATTERNS
    return frozenset(DEVELOPMENT_ORIGINS + STAGING_ORIGINS), PREVIEW_ORIGIN_PATTERNS


def get_client_ip(headers: Any) -> str:
    for header in CLIENT_IP_HEADERS:
        value = headers.get(header)
        if value:
            return value.split(",")[0].strip()
    return "unknown"


def validate_input(value: str, pattern_name: str) -> bool:
    return bool(VALIDATION_PATTERNS[pattern_name].match(value))


def sanitize_string(value: str) -> str:
    value = _SCRIPT_BLOCK.sub("", value)
    value = _JAVASCRIPT_URI.sub("", value)
    value = _EVENT_HANDLER.sub("", value)
    return value.strip()


def is_service_token(authorization: str | None, service_key: str) -> bool:
    if not authorization or not service_key:
        return False
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return hmac.compare_digest(token.strip(), service_key)


bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str, settings: Settings) -> dict[str, Any] | None:
    try:
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            audience=settings.supabase_jwt_audience,
        )
    except JWTError:
        return None


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    settings: Settings = request.app.state.settings
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    if not settings.supabase_jwt_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token verification is not configured",
        )

    payload = decode_access_token(credentials.credentials, settings)
    if not payload or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    request.state.user_id = payload["sub"]
    return payload
