"""
Shared httpx helpers for provider and storage calls.
"""

import json
from contextlib import asynccontextmanager
from typing import Optional

import httpx

from ..errors import ProviderError

DEFAULT_TIMEOUT = 60


@asynccontextmanager
async def use_client(client: Optional[httpx.AsyncClient] = None, timeout: float = DEFAULT_TIMEOUT):
    """Yield the caller's client, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
        yield owned


def error_detail(response: httpx.Response):
    """Pull the most useful message out of an upstream error body."""
    text = response.text
    try:
        body = json.loads(text)
    except ValueError:
        return text
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        return body.get("detail") or body.get("message") or text
    return text


def json_body(response: httpx.Response, source: str) -> dict:
    """Decode a 2xx body; a non-JSON body is the provider's fault."""
    try:
        return response.json()
    except ValueError:
        raise ProviderError(f"{source} returned a non-JSON body", detail=response.text[:500])
