"""Tests for the HTTP snapshot provider."""

import httpx
import pytest

from services.chat.history import HistoryClient, HistoryUnavailable

URL = "https://chat.example.com/api/channels/{topic}/messages"


def client_for(handler):
    return HistoryClient(URL, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_fetches_and_orders_newest_first(make_payload):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        return httpx.Response(
            200,
            json=[
                make_payload(1, "2024-03-15T10:00:00Z"),
                make_payload(3, "2024-03-15T10:02:00Z"),
                make_payload(2, "2024-03-15T10:01:00Z"),
            ],
        )

    entries = await client_for(handler).fetch_snapshot("global-chat-channel", 25)

    assert [e.message_id for e in entries] == [3, 2, 1]
    assert seen["url"] == "https://chat.example.com/api/channels/global-chat-channel/messages?limit=25"


@pytest.mark.asyncio
async def test_accepts_wrapped_list_and_skips_malformed(make_payload):
    def handler(request):
        return httpx.Response(
            200,
            json={"messages": [make_payload(1, "2024-03-15T10:00:00Z"), make_payload(2, "garbage")]},
        )

    entries = await client_for(handler).fetch_snapshot("room", 10)
    assert [e.message_id for e in entries] == [1]


@pytest.mark.asyncio
async def test_result_is_capped_at_limit(make_payload):
    def handler(request):
        return httpx.Response(
            200,
            json=[make_payload(i, f"2024-03-15T10:0{i}:00Z") for i in range(5)],
        )

    entries = await client_for(handler).fetch_snapshot("room", 2)
    assert [e.message_id for e in entries] == [4, 3]


@pytest.mark.asyncio
async def test_http_error_status():
    def handler(request):
        return httpx.Response(503, text="maintenance")

    with pytest.raises(HistoryUnavailable) as excinfo:
        await client_for(handler).fetch_snapshot("room", 10)
    assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_non_json_body():
    def handler(request):
        return httpx.Response(200, text="<html>")

    with pytest.raises(HistoryUnavailable):
        await client_for(handler).fetch_snapshot("room", 10)


@pytest.mark.asyncio
async def test_unexpected_document_shape():
    def handler(request):
        return httpx.Response(200, json={"ok": True})

    with pytest.raises(HistoryUnavailable):
        await client_for(handler).fetch_snapshot("room", 10)


@pytest.mark.asyncio
async def test_transport_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(HistoryUnavailable):
        await client_for(handler).fetch_snapshot("room", 10)
