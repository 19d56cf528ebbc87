"""
Chain API Endpoints.

Public read-only views of what the chain holds for a good.
"""

from fastapi import APIRouter, Depends, Path
from seatrace.app.models.goods_enums import GoodsStatus, status_text
from seatrace.app.schemas.chain import ChainTrace, ChainGoodStatus
from seatrace.app.schemas.goods import ApiResponse
from seatrace.app.services.chain_gateway import ChainGatewayClient, get_chain_gateway

router = APIRouter(prefix="/chain", tags=["Chain"])


@router.get("/trace/{good_id}", response_model=ApiResponse[ChainTrace])
async def get_chain_trace(
    good_id: str = Path(..., min_length=1),
    gateway: ChainGatewayClient = Depends(get_chain_gateway)
):
    """Raw on-chain trace of a good."""
    trace = await gateway.get_full_trace(good_id)
    return ApiResponse(data=trace)


@router.get("/status/{good_id}", response_model=ApiResponse[ChainGoodStatus])
async def get_chain_status(
    good_id: str = Path(..., min_length=1),
    gateway: ChainGatewayClient = Depends(get_chain_gateway)
):
    """On-chain status code of a good (1=Produced .. 4=Delivered)."""
    code = await gateway.get_good_status(good_id)
    try:
        text = status_text(GoodsStatus.from_rank(code))
    except ValueError:
        text = "Unknown"
    return ApiResponse(data=ChainGoodStatus(good_id=good_id, status_code=code, status_text=text))
