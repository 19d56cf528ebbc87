"""
Audit logging service for lifecycle actions and chain reconciliation.

Provides centralized logging for compliance and traceability review.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from seatrace.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    GOOD_REGISTERED = "GOOD_REGISTERED"
    GOOD_SHIPPED = "GOOD_SHIPPED"
    GOOD_INSPECTED = "GOOD_INSPECTED"
    GOOD_DELIVERED = "GOOD_DELIVERED"

    CHAIN_CONFIRMATION_FAILED = "CHAIN_CONFIRMATION_FAILED"
    CHAIN_RECONCILED = "CHAIN_RECONCILED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    company_id: Optional[int] = None,
    good_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log a lifecycle or reconciliation event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action (None for system jobs)
        actor_username: Username of actor
        company_id: Company the actor acted for
        good_id: Business identifier of the good concerned
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        company_id=company_id,
        action=action,
        good_id=good_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def get_good_audit_trail(
    db: AsyncSession,
    good_id: str,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve the audit trail of one good, most recent first.

    Args:
        db: Database session
        good_id: Business identifier of the good
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances
    """
    query = (
        select(AuditLog)
        .where(AuditLog.good_id == good_id)
        .order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
        .limit(limit)
    )

    result = await db.execute(query)
    return result.scalars().all()
