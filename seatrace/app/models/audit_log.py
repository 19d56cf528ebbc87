"""
Audit Log Database Model.

Tracks lifecycle actions and chain reconciliation for compliance review.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from seatrace.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - GOOD_REGISTERED / GOOD_SHIPPED / GOOD_INSPECTED / GOOD_DELIVERED
    - CHAIN_CONFIRMATION_FAILED
    - CHAIN_RECONCILED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)
    company_id = Column(Integer, index=True, nullable=True)

    # What action was performed, and on which good
    action = Column(String(100), nullable=False, index=True)
    good_id = Column(String(64), index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, good_id={self.good_id})>"
