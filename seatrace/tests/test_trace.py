"""
Trace assembly tests.
"""

import pytest
from sqlalchemy.exc import OperationalError

from seatrace.app.core.exceptions import ChainGatewayError, PendingChainConfirmationError, ResourceNotFoundError
from seatrace.app.models.enums import CompanyType
from seatrace.app.models.goods_enums import ChainConfirmation, GoodsStatus, Stage
from seatrace.app.schemas.goods import GoodsRegisterRequest, GoodsShipRequest
from seatrace.app.services.goods_lifecycle import GoodsLifecycleService
from seatrace.app.services.trace_assembler import TraceAssembler


@pytest.fixture
def service(db_session, chain_gateway):
    return GoodsLifecycleService(db_session, chain_gateway)


async def register(service, identities, **overrides):
    data = {
        "good_name": "Yellow Croaker Batch 1",
        "location": "Xiamen Factory",
        "batch_info": "Caught 2026-01-02, frozen on board",
        "quality_level": "A",
        "expiry_date": "2026-06-30",
    }
    data.update(overrides)
    return await service.register(GoodsRegisterRequest(**data), identities[CompanyType.PRODUCER])


@pytest.mark.asyncio
async def test_trace_of_registered_good_matches_submission(service, identities):
    """Production fields round-trip exactly and later stages are absent."""
    good = await register(service, identities)

    trace = await service.get_trace(good.good_id)

    assert trace.basic.good_id == good.good_id
    assert trace.basic.status == GoodsStatus.PRODUCED
    assert trace.basic.status_text == "Produced"
    assert trace.basic.owner_company == "Xiamen Seafood Co."
    assert trace.basic.blockchain_hash == good.blockchain_tx_hash

    assert trace.production.location == "Xiamen Factory"
    assert trace.production.batch_info == "Caught 2026-01-02, frozen on board"
    assert trace.production.quality_level == "A"
    assert trace.production.expiry_date.isoformat() == "2026-06-30"
    assert trace.production.company_name == "Xiamen Seafood Co."
    assert trace.production.confirmed
    assert trace.production.blockchain_hash

    assert trace.transport is None
    assert trace.inspection is None
    assert trace.delivery is None
    assert trace.pending_stages == []


@pytest.mark.asyncio
async def test_trace_shows_stage_pending_chain_confirmation(service, identities, chain_gateway):
    good = await register(service, identities)
    chain_gateway.fail_with = ChainGatewayError("Chain gateway unreachable", "shipGood")
    with pytest.raises(PendingChainConfirmationError):
        await service.ship(
            GoodsShipRequest(
                good_id=good.good_id,
                start_location="Xiamen",
                end_location="Fuzhou Port",
                transport_info="Refrigerated truck FJ-A1234",
            ),
            identities[CompanyType.SHIPPER],
        )
    chain_gateway.fail_with = None

    trace = await service.get_trace(good.good_id)

    assert trace.basic.status == GoodsStatus.PRODUCED
    assert trace.transport is not None
    assert trace.transport.confirmed is False
    assert trace.transport.chain_status == ChainConfirmation.FAILED
    assert trace.transport.blockchain_hash is None
    assert trace.pending_stages == [Stage.TRANSPORT]
    assert trace.discrepancies == []


@pytest.mark.asyncio
async def test_trace_includes_chain_cross_check(service, identities):
    good = await register(service, identities)

    trace = await service.get_trace(good.good_id, include_chain=True)

    assert trace.chain is not None
    assert trace.chain.good_name == "Yellow Croaker Batch 1"
    assert trace.chain.ship_exists is False
    assert trace.chain_error is None
    assert trace.discrepancies == []


@pytest.mark.asyncio
async def test_trace_degrades_when_chain_unavailable(service, identities, chain_gateway):
    """A failing chain query is non-fatal: the database trace is still returned."""
    good = await register(service, identities)
    chain_gateway.trace_error = ChainGatewayError("Chain gateway timed out after 10.0s", "getFullTrace")

    trace = await service.get_trace(good.good_id, include_chain=True)

    assert trace.chain is None
    assert "timed out" in trace.chain_error
    assert trace.production is not None


@pytest.mark.asyncio
async def test_trace_without_chain(service, identities, chain_gateway):
    good = await register(service, identities)
    chain_gateway.trace_error = ChainGatewayError("should not be called")

    trace = await service.get_trace(good.good_id, include_chain=False)

    assert trace.chain is None
    assert trace.chain_error is None


@pytest.mark.asyncio
async def test_trace_reports_discrepancies(service, identities, chain_gateway):
    """A stage confirmed in the database but missing on chain is flagged, not merged."""
    good = await register(service, identities)
    chain_gateway.ledger[good.good_id]["ship_exists"] = True

    trace = await service.get_trace(good.good_id, include_chain=True)

    assert trace.transport is None
    assert trace.discrepancies == ["transport: present on chain but not confirmed in database"]


@pytest.mark.asyncio
async def test_trace_unknown_good(db_session, chain_gateway):
    with pytest.raises(ResourceNotFoundError):
        await TraceAssembler(db_session, chain_gateway).get_trace("G-missing")


@pytest.mark.asyncio
async def test_trace_survives_company_lookup_failure(service, identities, db_session, chain_gateway, mocker):
    """A failed company lookup rolls back and the rest of the trace is still read."""
    good = await register(service, identities)
    mocker.patch.object(
        db_session, "get",
        side_effect=OperationalError("SELECT companies", {}, Exception("server closed the connection")),
    )
    rollback = mocker.spy(db_session, "rollback")

    trace = await TraceAssembler(db_session, chain_gateway).get_trace(good.good_id, include_chain=False)

    assert rollback.call_count >= 1
    assert trace.basic.owner_company == ""
    assert trace.basic.good_name == "Yellow Croaker Batch 1"
    assert trace.production is not None
    assert trace.production.company_name == "Xiamen Seafood Co."
    assert trace.production.location == "Xiamen Factory"
