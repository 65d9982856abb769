# stocksync/services/http_errors.py
"""
Maps HTTP responses and transport failures onto the sync error taxonomy.
"""
import logging
from typing import Dict, Optional

import httpx

from stocksync.core.exceptions import (
    PlatformAPIError,
    RateLimitExceeded,
    SyncEngineError,
    TransientRemoteError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

_SECRET_HEADERS = ("authorization", "x-shopify-access-token")


def mask_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    masked = dict(headers or {})
    for key in list(masked):
        if key.lower() in _SECRET_HEADERS:
            masked[key] = "Bearer [REDACTED]" if key.lower() == "authorization" else "[REDACTED]"
    return masked


def _body_excerpt(response: httpx.Response) -> str:
    try:
        return response.text[:300]
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return "<unreadable body>"


def classify_response(response: httpx.Response, platform: str) -> None:
    """Raise the matching error for a non-2xx response; return silently otherwise."""
    status = response.status_code
    if 200 <= status < 300:
        return

    body = _body_excerpt(response)
    message = f"{platform} API returned {status}: {body}"

    if status == 401:
        raise UnauthorizedError(message, platform=platform, status_code=status)
    if status == 429:
        raise RateLimitExceeded(message, platform=platform, status_code=status)
    if status >= 500:
        raise TransientRemoteError(message, platform=platform, status_code=status)
    raise PlatformAPIError(message, platform=platform, status_code=status)


def translate_transport_error(exc: httpx.HTTPError, platform: str) -> SyncEngineError:
    if isinstance(exc, httpx.TimeoutException):
        return TransientRemoteError(f"{platform} request timed out: {exc}", platform=platform)
    if isinstance(exc, httpx.TransportError):
        return TransientRemoteError(f"{platform} network error: {exc}", platform=platform)
    return PlatformAPIError(f"{platform} request failed: {exc}", platform=platform)


async def send(client: httpx.AsyncClient, platform: str, method: str, url: str, **kwargs) -> httpx.Response:
    """Issue one request and classify the outcome. No retry here."""
    logger.debug(f"{platform} {method} {url} headers={mask_headers(kwargs.get('headers'))}")
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        logger.warning(f"{platform} {method} {url} failed: {e}")
        raise translate_transport_error(e, platform) from e
    classify_response(response, platform)
    return response
