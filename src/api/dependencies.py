"""FastAPI dependencies for credentials, rate limiting and the upstream client."""

from datetime import datetime, timezone
from typing import AsyncIterator

import httpx
from fastapi import Depends, Header, HTTPException, Response, status

from api.models.responses import ErrorCodes
from core.clockify_client import ClockifyClient
from core.config import (
    API_KEY_HEADER,
    API_RATE_LIMIT_MAX_REQUESTS,
    API_RATE_LIMIT_WINDOW_SECONDS,
    MIN_API_KEY_LENGTH,
)
from core.ratelimit import RateLimiter, get_rate_limiter

_api_rate_limiter: RateLimiter | None = None


async def get_credential(x_api_key: str | None = Header(None, alias=API_KEY_HEADER)) -> str:
    """
    Read the caller's Clockify API key from the X-Api-Key header.

    The key is passed through to the upstream service, which is the real
    judge of validity; here it only has to look like a key.

    Raises:
        HTTPException: 401 if the key is missing or too short
    """
    api_key = (x_api_key or "").strip()
    if len(api_key) < MIN_API_KEY_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "Invalid or missing API key",
                "code": ErrorCodes.UNAUTHORIZED,
                "details": [f"Expected the {API_KEY_HEADER} header with at least {MIN_API_KEY_LENGTH} characters"],
            },
        )
    return api_key


def get_api_rate_limiter() -> RateLimiter:
    """Limiter for inbound API requests (separate from the upstream call limiter)."""
    global _api_rate_limiter
    if _api_rate_limiter is None:
        _api_rate_limiter = RateLimiter(API_RATE_LIMIT_MAX_REQUESTS, API_RATE_LIMIT_WINDOW_SECONDS)
    return _api_rate_limiter


async def enforce_rate_limit(
    response: Response,
    api_key: str = Depends(get_credential),
    limiter: RateLimiter = Depends(get_api_rate_limiter),
) -> str:
    """
    Admit the request against the caller's window.

    Raises:
        HTTPException: 429 with X-RateLimit-* headers when the window is full
    """
    result = limiter.check(api_key)
    reset_iso = datetime.fromtimestamp(result.reset_at, tz=timezone.utc).isoformat()
    headers = {
        "X-RateLimit-Limit": str(limiter.max_requests),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": reset_iso,
    }
    if not result.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "Rate limit exceeded",
                "code": ErrorCodes.RATE_LIMITED,
                "details": [],
                "reset_at": reset_iso,
            },
            headers=headers,
        )
    response.headers.update(headers)
    return api_key


def get_upstream_rate_limiter() -> RateLimiter:
    """Limiter shared by every upstream call made with a credential."""
    return get_rate_limiter()


def get_transport() -> httpx.AsyncBaseTransport | None:
    """Upstream HTTP transport; None means the real network. Overridden in tests."""
    return None


async def get_clockify_client(
    api_key: str = Depends(enforce_rate_limit),
    transport: httpx.AsyncBaseTransport | None = Depends(get_transport),
    upstream_limiter: RateLimiter = Depends(get_upstream_rate_limiter),
) -> AsyncIterator[ClockifyClient]:
    async with ClockifyClient(api_key, rate_limiter=upstream_limiter, transport=transport) as client:
        yield client
