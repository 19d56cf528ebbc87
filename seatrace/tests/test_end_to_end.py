"""
End-to-end lifecycle through the HTTP API.

Register -> Ship -> (rejected Inspect) -> Inspect -> Deliver -> public trace.
"""

import pytest
from seatrace.app.core.exceptions import ChainGatewayError
from seatrace.app.models.enums import CompanyType


@pytest.mark.asyncio
async def test_full_lifecycle(client, users, auth_headers, chain_gateway):
    producer = auth_headers(users[CompanyType.PRODUCER])
    shipper = auth_headers(users[CompanyType.SHIPPER])
    inspector = auth_headers(users[CompanyType.INSPECTOR])
    dealer = auth_headers(users[CompanyType.DEALER])

    # 1. Register
    response = await client.post("/v1/goods/register", headers=producer, json={
        "good_name": "Yellow Croaker Batch 1",
        "location": "Xiamen Factory",
        "batch_number": "B-2026-001",
        "quality_level": "A",
    })
    assert response.status_code == 200
    body = response.json()
    assert body["code"] == 200
    assert body["message"] == "success"
    good_id = body["data"]["good_id"]
    assert body["data"]["status"] == "PRODUCED"

    response = await client.get("/v1/goods/trace", params={"good_id": good_id})
    trace = response.json()["data"]
    assert trace["production"] is not None
    assert trace["transport"] is None
    assert trace["inspection"] is None
    assert trace["delivery"] is None

    # 2. Ship
    response = await client.post("/v1/goods/ship", headers=shipper, json={
        "good_id": good_id,
        "start_location": "Xiamen",
        "end_location": "Fuzhou Port",
        "transport_info": "Refrigerated truck FJ-A1234",
    })
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "SHIPPED"

    # 3. Inspect by a non-inspector company is rejected
    inspect_payload = {
        "good_id": good_id,
        "inspection_info": "Cold chain intact",
        "quality_score": 85,
        "pass_status": True,
        "location": "Fuzhou Port",
    }
    response = await client.post("/v1/goods/inspect", headers=dealer, json=inspect_payload)
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_PERM_001"

    response = await client.get("/v1/goods/trace", params={"good_id": good_id})
    assert response.json()["data"]["basic"]["status"] == "SHIPPED"

    # 4. Inspect
    response = await client.post("/v1/goods/inspect", headers=inspector, json=inspect_payload)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "INSPECTED"

    # 5. Deliver
    response = await client.post("/v1/goods/deliver", headers=dealer, json={
        "good_id": good_id,
        "delivery_info": "Delivered to stall 12",
        "recipient_name": "Zhang Min",
        "recipient_contact": "13800000000",
        "location": "Fuzhou Fresh Market",
    })
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "DELIVERED"

    # 6. Public trace carries all four confirmed stages
    response = await client.get("/v1/goods/trace", params={"good_id": good_id})
    assert response.status_code == 200
    trace = response.json()["data"]
    assert trace["basic"]["status_text"] == "Delivered"
    for stage in ("production", "transport", "inspection", "delivery"):
        assert trace[stage] is not None, stage
        assert trace[stage]["blockchain_hash"], stage
        assert trace[stage]["confirmed"] is True
    assert trace["inspection"]["quality_score"] == 85
    assert trace["chain"]["delivery_exists"] is True
    assert trace["discrepancies"] == []

    assert chain_gateway.functions_called() == ["registerGood", "shipGood", "inspectGood", "deliverGood"]


@pytest.mark.asyncio
async def test_register_by_shipper_is_forbidden(client, users, auth_headers, chain_gateway):
    response = await client.post("/v1/goods/register", headers=auth_headers(users[CompanyType.SHIPPER]), json={
        "good_name": "Yellow Croaker Batch 1",
        "location": "Xiamen Factory",
    })
    assert response.status_code == 403
    assert response.json()["code"] == 403
    assert chain_gateway.calls == []


@pytest.mark.asyncio
async def test_register_with_empty_name_is_rejected(client, users, auth_headers, chain_gateway):
    response = await client.post("/v1/goods/register", headers=auth_headers(users[CompanyType.PRODUCER]), json={
        "good_name": "",
        "location": "Xiamen Factory",
    })
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"
    assert chain_gateway.calls == []


@pytest.mark.asyncio
async def test_ship_out_of_order_returns_state_error(client, users, auth_headers, chain_gateway):
    producer = auth_headers(users[CompanyType.PRODUCER])
    response = await client.post("/v1/goods/register", headers=producer, json={
        "good_name": "Pomfret", "location": "Xiamen Factory",
    })
    good_id = response.json()["data"]["good_id"]

    response = await client.post("/v1/goods/deliver", headers=auth_headers(users[CompanyType.DEALER]), json={
        "good_id": good_id,
        "delivery_info": "Stall 3",
        "recipient_name": "Zhang Min",
        "recipient_contact": "13800000000",
        "location": "Fuzhou Fresh Market",
    })
    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_STATE_001"
    assert "Inspected" in body["message"]


@pytest.mark.asyncio
async def test_chain_failure_returns_pending_then_retry(client, users, auth_headers, chain_gateway):
    """The caller is told the stage is pending, and the retry endpoint confirms it."""
    producer = auth_headers(users[CompanyType.PRODUCER])
    chain_gateway.fail_with = ChainGatewayError("Chain gateway unreachable", "registerGood")

    response = await client.post("/v1/goods/register", headers=producer, json={
        "good_name": "Yellow Croaker Batch 2", "location": "Xiamen Factory",
    })
    assert response.status_code == 202
    body = response.json()
    assert body["code"] == 202
    assert body["error_code"] == "ERR_CHAIN_PENDING"
    good_id = body["data"]["good_id"]
    assert body["data"]["good"]["blockchain_tx_hash"] is None

    response = await client.get("/v1/goods/trace", params={"good_id": good_id, "include_chain": False})
    assert response.json()["data"]["pending_stages"] == ["production"]

    chain_gateway.fail_with = None
    response = await client.post(f"/v1/goods/{good_id}/retry-chain", headers=producer)
    assert response.status_code == 200
    assert response.json()["data"]["blockchain_tx_hash"]


@pytest.mark.asyncio
async def test_trace_of_unknown_good(client, chain_gateway):
    response = await client.get("/v1/goods/trace", params={"good_id": "G-missing"})
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"


@pytest.mark.asyncio
async def test_public_chain_endpoints(client, users, auth_headers, chain_gateway):
    response = await client.post("/v1/goods/register", headers=auth_headers(users[CompanyType.PRODUCER]), json={
        "good_name": "Yellow Croaker Batch 1", "location": "Xiamen Factory",
    })
    good_id = response.json()["data"]["good_id"]

    response = await client.get(f"/v1/chain/status/{good_id}")
    assert response.status_code == 200
    assert response.json()["data"] == {"good_id": good_id, "status_code": 1, "status_text": "Produced"}

    response = await client.get(f"/v1/chain/trace/{good_id}")
    assert response.status_code == 200
    assert response.json()["data"]["good_name"] == "Yellow Croaker Batch 1"

    response = await client.get("/v1/chain/trace/G-missing")
    assert response.status_code == 502
    assert response.json()["error_code"] == "ERR_CHAIN_001"


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers
