"""
Tests for HttpxAdapter

Coverage includes:
- URL building (base URL, route params, query string)
- Method, JSON body and headers forwarded
- Body decoding by content type
- Failure statuses and transport errors
- Empty resource reporting
"""

import json

import httpx
import pytest

from fetch_orchestrator.adapters import HttpxAdapter, build_url, create_httpx_adapter
from fetch_orchestrator.request import RequestDescriptor


def make_adapter(handler, base_url: str = "https://api.test") -> HttpxAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxAdapter(base_url, client=client)


class TestBuildUrl:
    """Tests for build_url."""

    def test_join_base_and_endpoint(self):
        descriptor = RequestDescriptor(endpoint="/users/:id").set_params({"id": 3})
        assert build_url("https://api.test/", descriptor) == "https://api.test/users/3"

    def test_query_string_appended(self):
        descriptor = RequestDescriptor(endpoint="users").set_query_params({"b": 2, "a": 1})
        assert build_url("https://api.test", descriptor) == "https://api.test/users?a=1&b=2"

    def test_absolute_endpoint_ignores_base(self):
        descriptor = RequestDescriptor(endpoint="https://other.test/x")
        assert build_url("https://api.test", descriptor) == "https://other.test/x"


class TestRequest:
    """Tests for outgoing requests."""

    @pytest.mark.asyncio
    async def test_forwards_method_body_and_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["token"] = request.headers.get("x-token")
            return httpx.Response(201, json={"id": 1})

        adapter = make_adapter(handler)
        descriptor = (
            RequestDescriptor(endpoint="/users", method="POST")
            .set_data({"name": "x"})
            .set_headers({"X-Token": "t"})
        )

        response = await adapter(descriptor)

        assert seen == {
            "method": "POST",
            "url": "https://api.test/users",
            "body": {"name": "x"},
            "token": "t",
        }
        assert response.success is True
        assert response.status == 201
        assert response.data == {"id": 1}
        assert response.error is None
        await adapter.aclose()


class TestResponse:
    """Tests for response conversion."""

    @pytest.mark.asyncio
    async def test_text_body_kept_as_text(self):
        adapter = make_adapter(lambda request: httpx.Response(200, text="hello"))

        response = await adapter(RequestDescriptor(endpoint="/greeting"))

        assert response.data == "hello"
        assert response.extra["resource_status"] == "success"

    @pytest.mark.asyncio
    async def test_failure_status_puts_body_in_error(self):
        adapter = make_adapter(lambda request: httpx.Response(404, json={"message": "missing"}))

        response = await adapter(RequestDescriptor(endpoint="/users/9"))

        assert response.success is False
        assert response.status == 404
        assert response.data is None
        assert response.error == {"message": "missing"}
        assert response.extra["resource_status"] == "error"

    @pytest.mark.asyncio
    async def test_empty_list_reported_as_empty_resource(self):
        adapter = make_adapter(lambda request: httpx.Response(200, json=[]))

        response = await adapter(RequestDescriptor(endpoint="/users"))

        assert response.data == []
        assert response.extra["resource_status"] == "emptyResource"

    @pytest.mark.asyncio
    async def test_zero_is_not_empty_resource(self):
        adapter = make_adapter(lambda request: httpx.Response(200, json=0))

        response = await adapter(RequestDescriptor(endpoint="/count"))

        assert response.data == 0
        assert response.extra["resource_status"] == "success"

    @pytest.mark.asyncio
    async def test_response_headers_in_extra(self):
        adapter = make_adapter(
            lambda request: httpx.Response(200, json={}, headers={"x-request-id": "abc"})
        )

        response = await adapter(RequestDescriptor(endpoint="/users"))

        assert response.extra["headers"]["x-request-id"] == "abc"

    @pytest.mark.asyncio
    async def test_transport_error_becomes_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        adapter = make_adapter(handler)

        response = await adapter(RequestDescriptor(endpoint="/users"))

        assert response.success is False
        assert response.status is None
        assert isinstance(response.error, httpx.ConnectError)


class TestLifecycle:
    """Tests for client ownership."""

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        adapter = create_httpx_adapter("https://api.test", client=client)

        await adapter.aclose()

        assert client.is_closed is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self):
        adapter = HttpxAdapter("https://api.test")

        await adapter.aclose()

        assert adapter._client.is_closed is True
