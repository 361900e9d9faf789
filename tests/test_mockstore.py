"""Tests for the reference store endpoint and full client round trips.

Uses httpx.ASGITransport so requests go through real HTTP handling
without a running server.
"""

import base64
import json

import httpx
import pytest
from gateway.client import MivaClient
from gateway.config import ClientSettings
from gateway.transport import HttpxTransport
from mockstore.dispatcher import INVALID_FUNCTION, FunctionNotFoundError, Registry
from mockstore.handlers import NOT_FOUND, VALIDATION_ERROR, default_catalog
from mockstore.server import (
    AUTH_FAILED,
    BAD_RANGE,
    BAD_STORE,
    ENDPOINT,
    StoreConfig,
    create_app,
    parse_range,
    verify_auth,
)
from protocol.auth import AUTH_HEADER_NAME, SshSigner, TokenSigner

SECRET = base64.b64encode(b"store-secret").decode("ascii")
BODY = b'{"Store_Code":"PS","Function":"ProductList_Load_Query"}'


@pytest.fixture
def make_client():
    def _make(config=None, **overrides):
        app = create_app(config or StoreConfig(), default_catalog())
        http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
        values = {
            "url": f"http://test{ENDPOINT}",
            "store_code": "PS",
            "access_token": "token",
            "private_key": "",
        }
        values.update(overrides)
        return MivaClient(ClientSettings(**values), transport=HttpxTransport(client=http))

    return _make


# ── Unit: auth and range helpers ─────────────────────────────────────


class TestVerifyAuth:
    def test_plain_token(self):
        config = StoreConfig()
        assert verify_auth(config, "MIVA token", BODY)
        assert not verify_auth(config, "MIVA other", BODY)
        assert not verify_auth(config, None, BODY)

    def test_plain_token_rejected_when_secret_configured(self):
        assert not verify_auth(StoreConfig(secret_key=SECRET), "MIVA token", BODY)

    @pytest.mark.parametrize("algorithm", ["sha1", "sha256"])
    def test_hmac(self, algorithm):
        config = StoreConfig(secret_key=SECRET)
        header = TokenSigner("token", SECRET, algorithm).header_value(BODY)
        assert verify_auth(config, header, BODY)
        assert not verify_auth(config, header, BODY + b" ")

    def test_ssh(self, rsa_private_pem, rsa_public_pem):
        config = StoreConfig(ssh_public_keys={"apiuser": rsa_public_pem})
        header = SshSigner("apiuser", rsa_private_pem).header_value(BODY)
        assert verify_auth(config, header, BODY)
        assert not verify_auth(config, header, BODY + b" ")
        assert not verify_auth(StoreConfig(), header, BODY)


class TestParseRange:
    def test_no_header(self):
        assert parse_range(None, 4) == (1, 4)

    def test_open_ended(self):
        assert parse_range("Operations=3-", 4) == (3, 4)

    def test_bounded_and_clamped(self):
        assert parse_range("Operations=2-3", 4) == (2, 3)
        assert parse_range("operations = 2 - 9", 4) == (2, 4)

    def test_malformed_runs_everything(self):
        assert parse_range("bytes=0-10", 4) == (1, 4)


class TestRegistry:
    @pytest.mark.anyio
    async def test_dispatch(self):
        reg = Registry()

        @reg.handler("Echo")
        async def echo(call, catalog):
            return {"success": 1, "data": call}

        assert reg.is_registered("Echo")
        assert reg.functions == ["Echo"]
        assert await reg.dispatch("Echo", {"x": 1}, None) == {"success": 1, "data": {"x": 1}}

    @pytest.mark.anyio
    async def test_unknown_function(self):
        with pytest.raises(FunctionNotFoundError) as excinfo:
            await Registry().dispatch("Nope", {}, None)
        assert excinfo.value.to_result()["error_code"] == INVALID_FUNCTION


# ── Endpoint over raw HTTP ───────────────────────────────────────────


@pytest.fixture
async def http():
    app = create_app(StoreConfig(), default_catalog())
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.mark.anyio
async def test_bad_auth_is_401(http):
    resp = await http.post(ENDPOINT, content=BODY, headers={AUTH_HEADER_NAME: "MIVA wrong"})
    assert resp.status_code == 401
    assert resp.json()["error_code"] == AUTH_FAILED


@pytest.mark.anyio
async def test_unparseable_body_is_400(http):
    resp = await http.post(ENDPOINT, content=b"{nope", headers={AUTH_HEADER_NAME: "MIVA token"})
    assert resp.status_code == 400


@pytest.mark.anyio
async def test_wrong_store_code(http):
    body = json.dumps({"Store_Code": "XX", "Function": "ProductList_Load_Query"}).encode()
    resp = await http.post(ENDPOINT, content=body, headers={AUTH_HEADER_NAME: "MIVA token"})
    assert resp.json()["error_code"] == BAD_STORE


# ── Client round trips ───────────────────────────────────────────────


@pytest.mark.anyio
async def test_single_list_query(make_client):
    async with make_client() as client:
        response = await client.func("ProductList_Load_Query").count(10).sort("-price").add().send()

    assert response.success
    data = response.get_data("ProductList_Load_Query")
    assert data["total_count"] == 2
    assert [p["code"] for p in data["data"]] == ["prod2", "prod1"]


@pytest.mark.anyio
async def test_show_and_search_filters(make_client):
    async with make_client() as client:
        everything = await client.func("ProductList_Load_Query").filter("show", "All").add().send()
        searched = await (
            client.func("ProductList_Load_Query")
            .filter("search", {"field": "code", "operator": "EQ", "value": "prod2"})
            .add()
            .send()
        )

    assert everything.get_data("ProductList_Load_Query")["total_count"] == 3
    assert [p["code"] for p in searched.get_data("ProductList_Load_Query")["data"]] == ["prod2"]


@pytest.mark.anyio
async def test_iterations_with_validation_error(make_client):
    async with make_client() as client:
        client.func("Product_Insert").params(
            {"Product_Code": "new1", "Product_Name": "New", "Product_Price": 3}
        ).add()
        client.func("Product_Insert").params({"Product_Code": "new2", "Product_Price": "x"}).add()
        response = await client.send()

    assert json.loads(client.previous_request[1])["Iterations"]
    assert response.failed()
    assert response.get_data("Product_Insert", 0)["code"] == "new1"
    (error,) = response.errors
    assert error.code == VALIDATION_ERROR
    assert error.index == 1
    assert error.is_validation_error
    assert response.errors.for_field("product_name") == [error]
    assert response.errors.for_field("PRODUCT_PRICE") == [error]


@pytest.mark.anyio
async def test_operations_round_trip(make_client):
    async with make_client() as client:
        client.func("CategoryList_Load_Query").add()
        client.func("Product_Insert").params(
            {"Product_Code": "a", "Product_Name": "A", "Product_Price": 1}
        ).add()
        client.func("Product_Insert").params(
            {"Product_Code": "b", "Product_Name": "B", "Product_Price": 2}
        ).add()
        client.func("Product_Update").params({"Edit_Product": "missing"}).add()
        client.func("Order_Load").add()
        response = await client.send()

    assert response.get_data("CategoryList_Load_Query")["total_count"] == 1
    assert [r["data"]["code"] for r in response.get_function("Product_Insert")] == ["a", "b"]
    codes = {e.function_name: e.code for e in response.errors}
    assert codes == {"Product_Update": NOT_FOUND, "Order_Load": INVALID_FUNCTION}
    assert response.errors.for_field("Edit_Product")[0].function_name == "Product_Update"


@pytest.mark.anyio
async def test_hmac_round_trip(make_client):
    config = StoreConfig(secret_key=SECRET)
    async with make_client(config, private_key=SECRET, hmac="sha1") as client:
        response = await client.func("CategoryList_Load_Query").add().send()
    assert response.success


@pytest.mark.anyio
async def test_ssh_round_trip(make_client, rsa_private_pem, rsa_public_pem):
    config = StoreConfig(ssh_public_keys={"apiuser": rsa_public_pem})
    async with make_client(config, ssh_username="apiuser", ssh_private_key=rsa_private_pem) as client:
        response = await client.func("ProductList_Load_Query").add().send()
    assert response.success


@pytest.mark.anyio
async def test_rejected_credentials_decode_as_failure(make_client):
    async with make_client(StoreConfig(secret_key=SECRET)) as client:
        response = await client.func("ProductList_Load_Query").add().send()

    assert response.status_code == 401
    assert response.failed()
    assert response.errors.all()[0].code == AUTH_FAILED


@pytest.mark.anyio
async def test_partial_batch_and_resume(make_client):
    def queue(client):
        client.func("ProductList_Load_Query").add()
        client.func("CategoryList_Load_Query").add()
        client.func("Product_Update").params({"Edit_Product": "prod1", "Product_Name": "Renamed"}).add()

    async with make_client(StoreConfig(max_operations=2)) as client:
        queue(client)
        first = await client.send()

        assert first.status_code == 206
        assert first.is_partial
        assert (first.content_range.completed, first.content_range.total) == (2, 3)
        assert first.get_data("CategoryList_Load_Query")["total_count"] == 1
        assert first.get_function("Product_Update") == []

        queue(client)
        client.set_operations_range(3)
        await client.send(raw=True)

    assert client.previous_request[0]["Range"] == "Operations=3-"
    assert client.previous_response.status_code == 200
    assert json.loads(client.previous_response.body) == [{"success": 1}]


@pytest.mark.anyio
async def test_unsatisfiable_range_decodes_as_failure(make_client):
    async with make_client() as client:
        client.func("ProductList_Load_Query").add()
        client.func("CategoryList_Load_Query").add()
        client.set_operations_range(3)
        response = await client.send()

    assert response.status_code == 416
    assert not response.is_partial
    assert response.errors.all()[0].code == BAD_RANGE


@pytest.mark.anyio
async def test_range_past_last_unit_is_416(http):
    resp = await http.post(
        ENDPOINT,
        content=BODY,
        headers={AUTH_HEADER_NAME: "MIVA token", "Range": "Operations=2-"},
    )
    assert resp.status_code == 416
    assert resp.json()["error_code"] == BAD_RANGE
    assert "content-range" not in resp.headers
