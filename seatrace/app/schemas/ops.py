"""
Operations Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional


class ReconcileReport(BaseModel):
    """Outcome of one reconciliation pass."""
    examined: int = Field(0, description="Unconfirmed stage records looked at")
    confirmed: int = Field(0, description="Records confirmed on chain during this pass")
    failed: int = Field(0, description="Records whose resubmission failed again")
    skipped: int = Field(0, description="Records left alone (in flight, inconsistent or missing chain identity)")
    good_ids: List[str] = Field(default_factory=list, description="Goods visited, in processing order")


class AuditLogItem(BaseModel):
    """Schema for one audit event of a good."""
    id: int
    action: str
    actor_id: Optional[int] = None
    actor_username: Optional[str] = None
    company_id: Optional[int] = None
    good_id: Optional[str] = None
    meta_data: Optional[Dict[str, Any]] = None
    timestamp: datetime

    class Config:
        from_attributes = True
