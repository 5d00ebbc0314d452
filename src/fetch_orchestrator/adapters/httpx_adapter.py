"""
Transport adapter using httpx.
"""
import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..config import is_empty_resource
from ..request import RequestDescriptor
from ..types import ClientResponse

logger = logging.getLogger("fetch_orchestrator.adapters.httpx")


def build_url(base_url: str, descriptor: RequestDescriptor) -> str:
    """Join base URL, resolved endpoint and encoded query string"""
    url = descriptor.url
    if base_url and not url.startswith(("http://", "https://")):
        url = f"{base_url.rstrip('/')}/{url.lstrip('/')}"
    query = descriptor.query_string
    if query:
        url = f"{url}{'&' if '?' in url else '?'}{query}"
    return url


def _decode_body(response: httpx.Response) -> Any:
    text = response.text
    if not text:
        return None
    if "json" not in response.headers.get("content-type", ""):
        return text
    try:
        return json.loads(text)
    except ValueError:
        return text


class HttpxAdapter:
    """
    Async transport adapter backed by httpx.AsyncClient.

    Converts a RequestDescriptor into an HTTP call and the reply into a
    ClientResponse. JSON bodies are decoded, anything else is kept as text.
    Transport failures (connect errors, timeouts) become a failed response
    with status None instead of raising.

    Example:
        adapter = HttpxAdapter("https://api.example.com")
        response = await adapter(RequestDescriptor(endpoint="/users"))
    """

    def __init__(
        self,
        base_url: str = "",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self._base_url = base_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def __call__(self, descriptor: RequestDescriptor) -> ClientResponse:
        url = build_url(self._base_url, descriptor)
        headers: Dict[str, str] = dict(descriptor.headers or {})

        logger.debug(f"HttpxAdapter: method={descriptor.method}, url={url}")

        try:
            response = await self._client.request(
                method=descriptor.method,
                url=url,
                headers=headers,
                json=descriptor.data,
            )
        except httpx.HTTPError as error:
            logger.warning(f"HttpxAdapter: {descriptor.method} {url} failed: {error!r}")
            return ClientResponse(
                data=None,
                error=error,
                status=None,
                success=False,
                extra={"headers": {}, "resource_status": "error"},
            )

        body = _decode_body(response)
        success = 200 <= response.status_code < 300

        logger.debug(f"HttpxAdapter: {descriptor.method} {url} -> {response.status_code}")

        if success:
            resource_status = "emptyResource" if is_empty_resource(body) else "success"
        else:
            resource_status = "error"

        return ClientResponse(
            data=body if success else None,
            error=None if success else body,
            status=response.status_code,
            success=success,
            extra={"headers": dict(response.headers), "resource_status": resource_status},
        )

    async def aclose(self) -> None:
        """Close the underlying client when the adapter created it"""
        if self._owns_client:
            await self._client.aclose()


def create_httpx_adapter(
    base_url: str = "",
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 30.0,
) -> HttpxAdapter:
    """Create an httpx transport adapter."""
    return HttpxAdapter(base_url, client, timeout)
