"""
Rate Limiting
=============

Implements rate limiting using slowapi with optional Redis backend.
The limiter is created per application and enforced by the
``enforce_rate_limit`` dependency on every API router.
"""

import hashlib

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from docgate.config import Settings


def rate_limit_key(request: Request, api_key_prefix: str = "ak_live_") -> str:
    """
    Get rate limit key from the bearer credential or IP address.

    API keys are keyed by their display prefix, signed tokens by a hash of
    the token. Unauthenticated requests fall back to the client IP.
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header[:7].lower() == "bearer ":
        credential = auth_header[7:].strip()
        if credential.startswith(api_key_prefix):
            return f"key:{credential[:len(api_key_prefix) + 8]}"
        if credential:
            return f"tok:{hashlib.sha256(credential.encode()).hexdigest()[:16]}"

    return f"ip:{get_remote_address(request)}"


def create_limiter(settings: Settings) -> Limiter:
    """Create and configure the rate limiter."""
    # Use Redis if available and not localhost, otherwise in-memory
    storage_uri = "memory://"
    if settings.redis_url and "localhost" not in settings.redis_url and "127.0.0.1" not in settings.redis_url:
        storage_uri = settings.redis_url

    prefix = settings.api_key_prefix
    return Limiter(
        key_func=lambda request: rate_limit_key(request, prefix),
        default_limits=[get_rate_limit_string(settings)],
        storage_uri=storage_uri,
        strategy="fixed-window",
        key_style="url",
        enabled=settings.rate_limit_enabled,
    )


def get_rate_limit_string(settings: Settings) -> str:
    return f"{settings.rate_limit_requests_per_minute}/minute"


async def enforce_rate_limit(request: Request) -> None:
    """
    Router dependency applying the app's limiter after routing.

    Runs the same check SlowAPIMiddleware would, but with the matched
    endpoint taken from the request scope, so routes mounted through
    ``include_router`` are limited too. Raises RateLimitExceeded (429).
    """
    limiter: Limiter = request.app.state.limiter
    if not limiter.enabled or getattr(request.state, "_rate_limiting_complete", False):
        return
    limiter._check_request_limit(request, request.scope.get("endpoint"), True)
    request.state._rate_limiting_complete = True
