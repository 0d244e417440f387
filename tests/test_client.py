import httpx
import pytest

from structgen.core.errors import (
    MalformedEnvelopeError,
    ProviderHTTPError,
    ProviderTimeout,
    ProviderTransportError,
)
from structgen.llm.client import send_json
from structgen.llm.dialects import WireRequest


WIRE = WireRequest(
    url="https://provider.test/chat",
    headers={"Authorization": "Bearer sk-secret"},
    body={"prompt": "hi"},
)


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_success_returns_json_and_size():
    async with _client(lambda request: httpx.Response(200, json={"ok": True})) as client:
        data, size = await send_json(client, WIRE, "Provider")
    assert data == {"ok": True}
    assert size > 0


@pytest.mark.asyncio
async def test_get_requests_send_no_body():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["body"] = request.content
        return httpx.Response(200, json={})

    wire = WireRequest(url="https://provider.test/status", headers={}, method="GET")
    async with _client(handler) as client:
        await send_json(client, wire, "Provider")
    assert seen == {"method": "GET", "body": b""}


@pytest.mark.asyncio
async def test_non_2xx_is_sanitized():
    def handler(request):
        return httpx.Response(503, text="upstream echoed Bearer sk-secret")

    async with _client(handler) as client:
        with pytest.raises(ProviderHTTPError) as excinfo:
            await send_json(client, WIRE, "Provider")

    assert excinfo.value.status_code == 503
    assert "503" in str(excinfo.value)
    assert "sk-secret" not in str(excinfo.value)


@pytest.mark.asyncio
async def test_non_json_body():
    async with _client(lambda request: httpx.Response(200, text="<html>")) as client:
        with pytest.raises(MalformedEnvelopeError):
            await send_json(client, WIRE, "Provider")


@pytest.mark.asyncio
async def test_transport_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    async with _client(handler) as client:
        with pytest.raises(ProviderTimeout):
            await send_json(client, WIRE, "Provider")


@pytest.mark.asyncio
async def test_transport_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(ProviderTransportError):
            await send_json(client, WIRE, "Provider")
