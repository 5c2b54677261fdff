"""Tests for the HTTP storage client against a mocked transport."""

import json

import httpx
import pytest

from shelf_planner.models.shelf_models import Fixture
from shelf_planner.engine.errors import CommitRefreshFailed, RemoteUnavailable
from shelf_planner.engine.reconciliation import ReconciliationEngine
from shelf_planner.engine.remote_cache import RefreshConfig, RemoteStateCache
from shelf_planner.services.storage_client import StorageClient

from conftest import BREAD


def make_client(handler, token=None) -> StorageClient:
    return StorageClient(
        base_url="http://store.test/api/",
        transport=httpx.MockTransport(handler),
        token_provider=lambda: token
    )


async def test_assign_puts_product_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"ok": True})

    client = make_client(handler, token="secret")
    result = await client.assign("p-milk", "F:1:1")
    await client.close()

    assert result.success
    assert result.error is None
    assert seen["method"] == "PUT"
    assert seen["path"] == "/api/slots/F:1:1/product"
    assert seen["body"] == {"product_id": "p-milk"}
    assert seen["auth"] == "Bearer secret"


async def test_assign_http_error_is_a_failed_result():
    def handler(request):
        return httpx.Response(409, text="slot locked")

    client = make_client(handler)
    result = await client.assign("p-milk", "F:1:1")

    assert not result.success
    assert result.error.startswith("HTTP 409")
    assert "slot locked" in result.error


async def test_assign_timeout_is_a_failed_result():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    client = make_client(handler)
    result = await client.assign("p-milk", "F:1:1")

    assert not result.success
    assert result.error == "Request timed out"


async def test_unassign_treats_missing_as_success():
    def handler(request):
        assert request.method == "DELETE"
        return httpx.Response(404)

    client = make_client(handler)
    result = await client.unassign("F:2:2")
    assert result.success


async def test_unassign_connection_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = make_client(handler)
    result = await client.unassign("F:2:2")
    assert not result.success
    assert "refused" in result.error


async def test_no_auth_header_without_token():
    def handler(request):
        assert "Authorization" not in request.headers
        return httpx.Response(204)

    client = make_client(handler)
    assert (await client.unassign("F:2:2")).success


async def test_read_fixture_occupancy_parses_products():
    def handler(request):
        assert request.url.path == "/api/fixtures/F/slots"
        return httpx.Response(200, json={"slots": [
            {"slot_id": "F:1:1", "row": 1, "column": 1,
             "product": {"id": 7, "name": "Milk", "category": "Dairy"}},
            {"slot_id": "F:1:2", "row": 1, "column": 2, "product": None},
        ]})

    client = make_client(handler)
    result = await client.read_fixture_occupancy("F")

    assert result.success
    assert result.slots["F:1:1"].id == "7"
    assert result.slots["F:1:1"].name == "Milk"
    assert result.slots["F:1:2"] is None


async def test_read_fixture_occupancy_failure():
    def handler(request):
        return httpx.Response(503, text="maintenance")

    client = make_client(handler)
    result = await client.read_fixture_occupancy("F")

    assert not result.success
    assert result.slots == {}
    assert "503" in result.error


async def test_read_fixture_occupancy_malformed_payload():
    def handler(request):
        return httpx.Response(200, json={"slots": [{"row": 1}]})

    client = make_client(handler)
    result = await client.read_fixture_occupancy("F")

    assert not result.success
    assert result.error.startswith("Malformed response")


async def test_read_fixture_occupancy_list_body():
    def handler(request):
        return httpx.Response(200, json=[{"slot_id": "F:1:1", "product": None}])

    client = make_client(handler)
    result = await client.read_fixture_occupancy("F")

    assert not result.success
    assert result.slots == {}
    assert result.error.startswith("Malformed response")


async def test_refresh_fails_cleanly_on_list_body():
    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json=[{"slot_id": "F:1:1", "product": None}])
        return httpx.Response(200, json={"ok": True})

    cache = RemoteStateCache(make_client(handler), config=RefreshConfig(attempts=1, backoff_seconds=0))
    engine = ReconciliationEngine(Fixture(id="F", rows=3, columns=4), cache)

    with pytest.raises(RemoteUnavailable):
        await cache.refresh("F")

    engine.stage("F:2:1", BREAD)
    with pytest.raises(CommitRefreshFailed) as exc:
        await engine.commit_all()
    assert exc.value.result.succeeded == 1
    assert engine.pending.is_empty()
