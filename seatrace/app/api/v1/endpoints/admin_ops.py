"""
Admin Operations API Endpoints.

Endpoints for chain reconciliation and audit review.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from seatrace.app.db.session import get_db
from seatrace.app.models.enums import UserRole
from seatrace.app.core.guards import require_role
from seatrace.app.core.identity import Identity
from seatrace.app.schemas.goods import ApiResponse
from seatrace.app.schemas.ops import ReconcileReport, AuditLogItem
from seatrace.app.services.audit import get_good_audit_trail
from seatrace.app.services.chain_gateway import ChainGatewayClient, get_chain_gateway
from seatrace.app.services.reconciliation import ChainReconciler

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.post("/reconcile", response_model=ApiResponse[ReconcileReport])
async def trigger_reconciliation(
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Maximum number of goods to process"),
    current_user: Identity = Depends(require_role([UserRole.SUPER_ADMIN])),
    db: AsyncSession = Depends(get_db),
    gateway: ChainGatewayClient = Depends(get_chain_gateway)
):
    """
    Resubmit stage records that are pending chain confirmation.

    Runs one reconciliation pass synchronously and returns its report.
    """
    report = await ChainReconciler(db, gateway).reconcile(limit)
    return ApiResponse(data=report)


@router.get("/goods/{good_id}/audit", response_model=ApiResponse[List[AuditLogItem]])
async def get_audit_trail(
    good_id: str = Path(..., description="Business identifier of the good"),
    limit: int = Query(100, ge=1, le=500),
    current_user: Identity = Depends(require_role([UserRole.SUPER_ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Audit events recorded for a good, most recent first."""
    events = await get_good_audit_trail(db, good_id, limit)
    return ApiResponse(data=[AuditLogItem.model_validate(e) for e in events])
