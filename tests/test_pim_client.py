import asyncio
import json

import httpx
import pytest

from conftest import RecordingSleep
from pim_sync.pim.pim_client import IMAGES_PATH, SourceConnector, SourceUnavailableError


def _result(items):
    # the PIM double-encodes: result is a JSON string
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 0, "result": json.dumps(items)})


def _connector(handler, sleep=None, **kw):
    return SourceConnector(
        hostname="pim.test",
        user="u",
        password="p",
        partitions=["production_api", "test", "demo"],
        language="FI",
        transport=httpx.MockTransport(handler),
        sleep=sleep or RecordingSleep(),
        **kw,
    )


def test_first_partition_with_records_wins():
    seen = []

    def handler(request: httpx.Request):
        body = json.loads(request.content)
        seen.append(body["params"]["db_name"])
        assert body["method"] == "call"
        assert body["params"]["LanguageCode"] == "fi_FI"
        assert body["params"]["StyleCode"] == "STTU755"
        if body["params"]["db_name"] == "production_api":
            return _result([])
        return _result([{"StyleCode": "STTU755", "Variants": [{"ColorCode": "C001"}]}])

    items = asyncio.run(_connector(handler).fetch_style("STTU755"))
    assert seen == ["production_api", "test"]
    assert items[0]["StyleCode"] == "STTU755"


def test_application_error_and_bad_payload_reject_partition():
    def handler(request: httpx.Request):
        db = json.loads(request.content)["params"]["db_name"]
        if db == "production_api":
            return httpx.Response(200, json={"error": {"message": "Access Denied"}})
        if db == "test":
            return httpx.Response(200, json={"result": json.dumps({"not": "a list"})})
        return _result([{"StyleCode": "X"}])

    sleep = RecordingSleep()
    items = asyncio.run(_connector(handler, sleep).fetch_all())
    assert items == [{"StyleCode": "X"}]
    # no connectivity flavour, so no cooldowns
    assert sleep.delays == []


def test_transient_failure_retries_whole_probe_then_gives_up():
    calls = []

    def handler(request: httpx.Request):
        calls.append(json.loads(request.content)["params"]["db_name"])
        return httpx.Response(200, json={"error": {"data": {"name": "psycopg2.OperationalError"}}})

    sleep = RecordingSleep()
    with pytest.raises(SourceUnavailableError) as exc:
        asyncio.run(_connector(handler, sleep).fetch_style("STTU755"))
    assert "No data found in any partition" in str(exc.value)
    assert len(calls) == 9
    probe_waits = [d for d in sleep.delays if d != 1.0]
    assert probe_waits == [2.0, 4.0]
    assert sleep.delays.count(1.0) == 9


def test_transient_failure_recovers_on_second_probe():
    state = {"n": 0}

    def handler(request: httpx.Request):
        state["n"] += 1
        if state["n"] == 1:
            raise httpx.ConnectError("boom")
        return _result([{"StyleCode": "STTU755", "Variants": []}])

    sleep = RecordingSleep()
    items = asyncio.run(_connector(handler, sleep).fetch_style("STTU755"))
    assert items[0]["StyleCode"] == "STTU755"
    # cooldown after the failed partition only
    assert sleep.delays == [1.0]


def test_flattened_style_response_is_grouped_in_connector():
    rows = [{"StyleCode": "STTU755", "StyleName": "Creator", "ColorCode": f"C{i}", "SizeCode": "M"} for i in range(150)]

    def handler(request: httpx.Request):
        return _result(rows)

    items = asyncio.run(_connector(handler).fetch_style("STTU755"))
    assert len(items) == 1
    assert len(items[0]["Variants"]) == 150


def test_image_rows_without_htmlpath_are_dropped():
    def handler(request: httpx.Request):
        assert request.url.path == IMAGES_PATH
        return _result([{"FName": "a", "HTMLPath": "https://cdn/a.jpg"}, {"FName": "b", "HTMLPath": ""}])

    rows = asyncio.run(_connector(handler).fetch_images("STTU755"))
    assert [r["FName"] for r in rows] == ["a"]
