import asyncio

import httpx
import pytest

from conftest import RecordingSleep
from pim_sync.shopify.graphql import ShopifyError, ShopifyGraphQL, edges, user_errors


def _client(handler, sleep):
    return ShopifyGraphQL(
        shop="https://demo.myshopify.com/",
        access_token="shpat_secret",
        api_version="2025-01",
        transport=httpx.MockTransport(handler),
        sleep=sleep,
    )


def _run(client, query="query { shop { name } }"):
    async def go():
        async with client:
            return await client.execute(query, {"a": 1})
    return asyncio.run(go())


def test_execute_posts_to_admin_endpoint_and_returns_data():
    def handler(request: httpx.Request):
        assert str(request.url) == "https://demo.myshopify.com/admin/api/2025-01/graphql.json"
        assert request.headers["X-Shopify-Access-Token"] == "shpat_secret"
        return httpx.Response(200, json={"data": {"shop": {"name": "Demo"}}})

    assert _run(_client(handler, RecordingSleep())) == {"shop": {"name": "Demo"}}


def test_throttled_response_waits_and_retries():
    responses = [
        httpx.Response(200, json={"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}),
        httpx.Response(200, json={"data": {"ok": True}}),
    ]

    def handler(request: httpx.Request):
        return responses.pop(0)

    sleep = RecordingSleep()
    assert _run(_client(handler, sleep)) == {"ok": True}
    assert sleep.delays == [5]


def test_top_level_errors_raise():
    def handler(request: httpx.Request):
        return httpx.Response(200, json={"errors": [{"message": "Field 'nope' doesn't exist"}]})

    with pytest.raises(ShopifyError) as exc:
        _run(_client(handler, RecordingSleep()))
    assert "nope" in str(exc.value)


def test_unauthorized_is_not_retried():
    calls = []

    def handler(request: httpx.Request):
        calls.append(1)
        return httpx.Response(401, text="Invalid API key")

    sleep = RecordingSleep()
    with pytest.raises(ShopifyError):
        _run(_client(handler, sleep))
    assert len(calls) == 1
    assert sleep.delays == []


def test_server_errors_retry_then_raise():
    def handler(request: httpx.Request):
        return httpx.Response(502, text="bad gateway")

    sleep = RecordingSleep()
    with pytest.raises(ShopifyError) as exc:
        _run(_client(handler, sleep))
    assert "Max retries" in str(exc.value)
    assert sleep.delays == [2, 4]


def test_helpers_read_user_errors_and_edges():
    data = {
        "productCreate": {"userErrors": [{"field": ["title"], "message": "Title can't be blank"}]},
        "products": {"edges": [{"node": {"id": "1"}}, {"node": {"id": "2"}}]},
    }
    assert user_errors(data, "productCreate")[0]["message"] == "Title can't be blank"
    assert user_errors(data, "productUpdate") == []
    assert [n["id"] for n in edges(data, "products")] == ["1", "2"]
