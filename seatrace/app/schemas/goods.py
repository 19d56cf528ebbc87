"""
Goods Pydantic schemas.

Defines request and response models for the goods lifecycle and trace.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime, date
from typing import Any, Generic, List, Optional, TypeVar
from seatrace.app.models.goods_enums import GoodsStatus, Stage, ChainConfirmation
from seatrace.app.schemas.chain import ChainTrace

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Uniform response envelope; ``code`` 200 means success."""
    code: int = 200
    message: str = "success"
    data: Optional[T] = None


class GoodsRegisterRequest(BaseModel):
    """Schema for registering a new good (producer only)."""
    good_name: str = Field(..., min_length=1, max_length=100, description="Display name of the good")
    batch_number: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, description="Free-text description")
    location: str = Field(..., min_length=1, max_length=255, description="Production location")
    batch_info: Optional[str] = None
    quality_level: Optional[str] = Field(None, max_length=20)
    expiry_date: Optional[date] = Field(None, description="YYYY-MM-DD or RFC 3339 timestamp")

    @field_validator("expiry_date", mode="before")
    @classmethod
    def parse_expiry_date(cls, value: Any):
        # Accept full timestamps and keep only the date part
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        if value == "":
            return None
        return value


class GoodsShipRequest(BaseModel):
    """Schema for recording transport (shipper only)."""
    good_id: str = Field(..., min_length=1, max_length=64)
    start_location: str = Field(..., min_length=1, max_length=255)
    end_location: str = Field(..., min_length=1, max_length=255)
    transport_info: str = Field(..., min_length=1, description="Vessel / vehicle / route details")
    end_time: Optional[datetime] = Field(None, description="Expected arrival time")
    tracking_number: Optional[str] = Field(None, max_length=50)


class GoodsInspectRequest(BaseModel):
    """Schema for recording an inspection (port / inspector only)."""
    good_id: str = Field(..., min_length=1, max_length=64)
    inspection_info: str = Field(..., min_length=1)
    quality_score: int = Field(..., ge=0, le=100)
    pass_status: bool = Field(default=True, description="Recorded only; a failed inspection does not block delivery")
    location: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = None


class GoodsDeliverRequest(BaseModel):
    """Schema for recording delivery (dealer only)."""
    good_id: str = Field(..., min_length=1, max_length=64)
    delivery_info: str = Field(..., min_length=1)
    recipient_name: str = Field(..., min_length=1, max_length=100)
    recipient_contact: str = Field(..., min_length=1, max_length=50)
    location: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = None


class GoodSummary(BaseModel):
    """Basic good information returned by every lifecycle operation."""
    id: int
    good_id: str
    good_name: str
    batch_number: Optional[str] = None
    owner_company_id: int
    owner_company: str = ""
    description: Optional[str] = None
    status: GoodsStatus
    status_text: str
    blockchain_tx_hash: Optional[str] = None
    stage: Optional[Stage] = Field(None, description="Stage recorded by this operation")
    chain_status: Optional[ChainConfirmation] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Trace view

class StageTraceBase(BaseModel):
    id: int
    company_id: int
    company_name: str = ""
    operator_name: Optional[str] = None
    blockchain_hash: Optional[str] = None
    chain_status: ChainConfirmation
    confirmed: bool


class ProductionTrace(StageTraceBase):
    location: str
    produced_at: Optional[datetime] = None
    batch_info: Optional[str] = None
    quality_level: Optional[str] = None
    expiry_date: Optional[date] = None


class TransportTrace(StageTraceBase):
    start_location: str
    end_location: str
    transport_info: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    actual_arrival_time: Optional[datetime] = None
    tracking_number: Optional[str] = None


class InspectionTrace(StageTraceBase):
    inspection_info: str
    quality_score: int
    pass_status: bool
    inspection_time: Optional[datetime] = None
    location: str
    notes: Optional[str] = None


class DeliveryTrace(StageTraceBase):
    delivery_info: str
    recipient_name: str
    recipient_contact: str
    delivery_time: Optional[datetime] = None
    location: str
    notes: Optional[str] = None


class TraceBasic(BaseModel):
    id: int
    good_id: str
    good_name: str
    batch_number: Optional[str] = None
    description: Optional[str] = None
    owner_company_id: int
    owner_company: str = ""
    status: GoodsStatus
    status_text: str
    blockchain_hash: Optional[str] = None
    created_at: Optional[datetime] = None


class TraceView(BaseModel):
    """
    Full trace of one good.

    Stage sections are present only when that stage's record exists.
    ``chain`` is the independently stored on-chain trace, shown as a
    cross-check; ``discrepancies`` lists where the two disagree.
    """
    basic: TraceBasic
    production: Optional[ProductionTrace] = None
    transport: Optional[TransportTrace] = None
    inspection: Optional[InspectionTrace] = None
    delivery: Optional[DeliveryTrace] = None
    pending_stages: List[Stage] = Field(default_factory=list)
    chain: Optional[ChainTrace] = None
    chain_error: Optional[str] = None
    discrepancies: List[str] = Field(default_factory=list)
