"""
Goods API Endpoints.

Lifecycle operations for company operators and the public trace.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from seatrace.app.db.session import get_db
from seatrace.app.core.guards import require_company_member
from seatrace.app.core.identity import Identity
from seatrace.app.schemas.goods import (
    ApiResponse,
    GoodSummary,
    GoodsRegisterRequest,
    GoodsShipRequest,
    GoodsInspectRequest,
    GoodsDeliverRequest,
    TraceView,
)
from seatrace.app.services.chain_gateway import ChainGatewayClient, get_chain_gateway
from seatrace.app.services.goods_lifecycle import GoodsLifecycleService

router = APIRouter(prefix="/goods", tags=["Goods"])


def get_lifecycle_service(
    db: AsyncSession = Depends(get_db),
    gateway: ChainGatewayClient = Depends(get_chain_gateway)
) -> GoodsLifecycleService:
    return GoodsLifecycleService(db, gateway)


@router.post("/register", response_model=ApiResponse[GoodSummary])
async def register_good(
    request: GoodsRegisterRequest,
    current_user: Identity = Depends(require_company_member),
    service: GoodsLifecycleService = Depends(get_lifecycle_service)
):
    """
    Register a new good (producer companies only).

    The good and its production record are saved first, then registered on
    chain. If the chain does not confirm, the response is 202 with
    ``ERR_CHAIN_PENDING`` and the good can be resubmitted via
    ``/goods/{good_id}/retry-chain``.
    """
    good = await service.register(request, current_user)
    return ApiResponse(data=good)


@router.post("/ship", response_model=ApiResponse[GoodSummary])
async def ship_good(
    request: GoodsShipRequest,
    current_user: Identity = Depends(require_company_member),
    service: GoodsLifecycleService = Depends(get_lifecycle_service)
):
    """Record transport of a produced good (shipper companies only)."""
    good = await service.ship(request, current_user)
    return ApiResponse(data=good)


@router.post("/inspect", response_model=ApiResponse[GoodSummary])
async def inspect_good(
    request: GoodsInspectRequest,
    current_user: Identity = Depends(require_company_member),
    service: GoodsLifecycleService = Depends(get_lifecycle_service)
):
    """Record inspection of a shipped good (inspector companies only)."""
    good = await service.inspect(request, current_user)
    return ApiResponse(data=good)


@router.post("/deliver", response_model=ApiResponse[GoodSummary])
async def deliver_good(
    request: GoodsDeliverRequest,
    current_user: Identity = Depends(require_company_member),
    service: GoodsLifecycleService = Depends(get_lifecycle_service)
):
    """Record delivery of an inspected good (dealer companies only)."""
    good = await service.deliver(request, current_user)
    return ApiResponse(data=good)


@router.post("/{good_id}/retry-chain", response_model=ApiResponse[GoodSummary])
async def retry_chain_confirmation(
    good_id: str = Path(..., description="Business identifier of the good"),
    current_user: Identity = Depends(require_company_member),
    service: GoodsLifecycleService = Depends(get_lifecycle_service)
):
    """Resubmit the earliest stage of a good that is still pending chain confirmation."""
    good = await service.retry_chain_confirmation(good_id, current_user)
    return ApiResponse(data=good)


@router.get("/trace", response_model=ApiResponse[TraceView])
async def get_trace(
    good_id: str = Query(..., min_length=1, description="Business identifier of the good"),
    include_chain: Optional[bool] = Query(None, description="Also read the on-chain trace"),
    service: GoodsLifecycleService = Depends(get_lifecycle_service)
):
    """
    Public trace of a good. No authentication required.
    """
    trace = await service.get_trace(good_id, include_chain)
    return ApiResponse(data=trace)
