"""
Chain gateway client tests.

The HTTP side is replaced with ``httpx.MockTransport`` so request bodies and
response handling can be checked without a node.
"""

import json
import httpx
import pytest

from seatrace.app.core.exceptions import ChainGatewayError
from seatrace.app.core.reliability import CircuitBreaker
from seatrace.app.services.chain_gateway import (
    ChainGatewayClient, QUERY_ENDPOINT, TRANSACTION_ENDPOINT
)

CALLER = "0x" + "b2" * 20
TX_HASH = "0x" + "ab" * 32


def make_gateway(handler, **overrides):
    options = {
        "base_url": "http://chain.test",
        "contract_address": "0x" + "ee" * 20,
        "contract_abi": "[]",
        "contract_name": "Traceability",
        "group_id": 1,
        "app_key": "",
        "app_secret": "",
        "timeout": 2.0,
        "transport": httpx.MockTransport(handler),
        "breaker": CircuitBreaker(name="test_chain", failure_threshold=3, reset_timeout=60),
    }
    options.update(overrides)
    return ChainGatewayClient(**options)


@pytest.mark.asyncio
async def test_call_sends_contract_request():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"transactionHash": TX_HASH, "message": "Success", "code": 0})

    gateway = make_gateway(handler, app_key="key-1", app_secret="secret-1")
    result = await gateway.ship_good("G120260101abcd1234", "Truck FJ-A1234", CALLER)
    await gateway.aclose()

    assert result.transaction_hash == TX_HASH
    assert result.status_message == "Success"

    assert captured["path"] == TRANSACTION_ENDPOINT
    assert captured["headers"]["App-Key"] == "key-1"
    assert captured["headers"]["App-Secret"] == "secret-1"
    body = captured["body"]
    assert body["funcName"] == "shipGood"
    assert body["funcParam"] == ["G120260101abcd1234", "Truck FJ-A1234"]
    assert body["user"] == CALLER
    assert body["groupId"] == 1
    assert body["contractAbi"] == []
    assert body["useCns"] is False


@pytest.mark.asyncio
async def test_call_passes_non_success_message_through():
    """The caller decides what a status message means; the client only reports it."""
    def handler(request):
        return httpx.Response(200, json={"transactionHash": TX_HASH, "message": "Good already shipped"})

    gateway = make_gateway(handler)
    result = await gateway.call("shipGood", ["G1", "Truck"], CALLER)

    assert result.transaction_hash == TX_HASH
    assert result.status_message == "Good already shipped"


@pytest.mark.asyncio
async def test_call_rejected_by_gateway():
    def handler(request):
        return httpx.Response(200, json={"code": 201001, "message": "contract address is invalid"})

    gateway = make_gateway(handler)
    with pytest.raises(ChainGatewayError) as exc_info:
        await gateway.call("registerGood", ["G1", "Crab"], CALLER)

    assert "contract address is invalid" in exc_info.value.message
    assert exc_info.value.function_name == "registerGood"
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_call_without_transaction_hash():
    def handler(request):
        return httpx.Response(200, json={"message": "Success"})

    gateway = make_gateway(handler)
    with pytest.raises(ChainGatewayError, match="no transaction hash"):
        await gateway.call("registerGood", ["G1", "Crab"], CALLER)


@pytest.mark.asyncio
@pytest.mark.parametrize("response, expected", [
    (httpx.Response(500, text="node down"), "HTTP 500"),
    (httpx.Response(200, text="<html>gateway</html>"), "non-JSON"),
    (httpx.Response(200, json=["unexpected"]), "unexpected response"),
])
async def test_call_bad_responses(response, expected):
    gateway = make_gateway(lambda request: response)
    with pytest.raises(ChainGatewayError, match=expected):
        await gateway.call("inspectGood", ["G1", "Passed"], CALLER)


@pytest.mark.asyncio
async def test_call_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    gateway = make_gateway(handler)
    with pytest.raises(ChainGatewayError, match="timed out"):
        await gateway.call("deliverGood", ["G1", "Stall 12"], CALLER)


@pytest.mark.asyncio
async def test_call_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    gateway = make_gateway(handler)
    with pytest.raises(ChainGatewayError, match="unreachable"):
        await gateway.call("deliverGood", ["G1", "Stall 12"], CALLER)


@pytest.mark.asyncio
async def test_get_full_trace_parses_contract_result():
    captured = {}

    def handler(request):
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"code": 0, "data": {"result": {
            "goodId": "G1",
            "goodName": "Yellow Croaker Batch 1",
            "ownerCompanyId": "1",
            "registerTime": "1767254400",
            "shipExists": True,
            "shipCompanyId": "2",
            "shipOperatorAddr": CALLER,
            "transportInfo": "Truck FJ-A1234",
            "shipTime": 1767258000,
            "inspectExists": False,
            "inspectTime": 0,
            "deliveryExists": False,
        }}})

    gateway = make_gateway(handler, public_user="reader")
    trace = await gateway.get_full_trace("G1")

    assert captured["path"] == QUERY_ENDPOINT
    assert captured["body"]["funcName"] == "getFullTrace"
    assert captured["body"]["user"] == "reader"

    assert trace.good_id == "G1"
    assert trace.good_name == "Yellow Croaker Batch 1"
    assert trace.owner_company_id == "1"
    assert trace.register_time == "2026-01-01 08:00:00"
    assert trace.ship_exists is True
    assert trace.ship_time == "2026-01-01 09:00:00"
    assert trace.inspect_exists is False
    assert trace.inspect_time is None
    assert trace.completed_stages == 2


@pytest.mark.asyncio
async def test_get_full_trace_without_result():
    def handler(request):
        return httpx.Response(200, json={"code": 0, "data": {}})

    gateway = make_gateway(handler)
    with pytest.raises(ChainGatewayError, match="no result"):
        await gateway.get_full_trace("G1")


@pytest.mark.asyncio
async def test_get_good_status():
    def handler(request):
        return httpx.Response(200, json={"code": 0, "data": {"result": "3"}})

    gateway = make_gateway(handler)
    assert await gateway.get_good_status("G1") == 3


@pytest.mark.asyncio
async def test_get_good_status_unparseable():
    def handler(request):
        return httpx.Response(200, json={"code": 0, "data": {"result": "n/a"}})

    gateway = make_gateway(handler)
    with pytest.raises(ChainGatewayError, match="Unable to parse chain status"):
        await gateway.get_good_status("G1")


@pytest.mark.asyncio
async def test_contract_abi_loaded_from_file(tmp_path):
    abi = [{"name": "registerGood", "type": "function", "inputs": []}]
    abi_file = tmp_path / "Traceability.abi"
    abi_file.write_text(json.dumps(abi), encoding="utf-8")
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"transactionHash": TX_HASH, "message": "Success"})

    gateway = make_gateway(handler, contract_abi=str(abi_file))
    await gateway.register_good("G1", "Crab", CALLER)

    assert captured["body"]["contractAbi"] == abi


@pytest.mark.asyncio
async def test_invalid_contract_abi_is_reported_without_a_request(mocker):
    handler = mocker.Mock(return_value=httpx.Response(200, json={}))
    gateway = make_gateway(handler, contract_abi="{not json")

    with pytest.raises(ChainGatewayError, match="not valid JSON"):
        await gateway.register_good("G1", "Crab", CALLER)
    handler.assert_not_called()
