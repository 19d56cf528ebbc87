"""
Lifecycle stage record models.

One table per stage. Each table holds at most one record per good: the
unique ``good_id`` column is the idempotency key for (good, stage), so a
retried stage reuses its unconfirmed record instead of inserting another.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Date, Boolean, ForeignKey, Enum
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql import func
from seatrace.app.db.session import Base
from seatrace.app.models.goods_enums import ChainConfirmation


class StageRecordMixin:
    """Columns shared by every stage record."""

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    @declared_attr
    def goods_id(cls):
        return Column(Integer, ForeignKey('goods.id'), nullable=False, index=True)

    good_id = Column(String(64), unique=True, nullable=False, index=True)

    # Acting company and operator
    @declared_attr
    def company_id(cls):
        return Column(Integer, ForeignKey('companies.id'), nullable=False, index=True)

    company_name = Column(String(100), nullable=True)
    operator_id = Column(Integer, nullable=False, default=0)
    operator_name = Column(String(100), nullable=True)

    # Chain confirmation
    blockchain_tx_hash = Column(String(66), nullable=True)
    chain_status = Column(Enum(ChainConfirmation), default=ChainConfirmation.PENDING, nullable=False, index=True)
    chain_attempts = Column(Integer, default=0, nullable=False)
    last_chain_error = Column(Text, nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_confirmed(self) -> bool:
        return self.chain_status == ChainConfirmation.CONFIRMED

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, good_id='{self.good_id}', chain_status='{self.chain_status}')>"


class GoodsProduction(StageRecordMixin, Base):
    """Production record, written at registration by a producer."""
    __tablename__ = "goods_production"

    location = Column(String(255), nullable=False)
    produced_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    batch_info = Column(Text, nullable=True)
    quality_level = Column(String(20), nullable=True)
    expiry_date = Column(Date, nullable=True)


class GoodsTransport(StageRecordMixin, Base):
    """Transport record, written by a shipper."""
    __tablename__ = "goods_transport"

    start_location = Column(String(255), nullable=False)
    end_location = Column(String(255), nullable=False)
    transport_info = Column(Text, nullable=False)
    start_time = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    actual_arrival_time = Column(DateTime(timezone=True), nullable=True)
    tracking_number = Column(String(50), nullable=True)


class GoodsInspection(StageRecordMixin, Base):
    """Inspection record, written by a port / inspection company."""
    __tablename__ = "goods_inspection"

    inspection_info = Column(Text, nullable=False)
    quality_score = Column(Integer, nullable=False, default=0)
    # A failed inspection is recorded but does not block the lifecycle
    pass_status = Column(Boolean, nullable=False, default=True)
    inspection_time = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    location = Column(String(255), nullable=False)
    notes = Column(Text, nullable=True)


class GoodsDelivery(StageRecordMixin, Base):
    """Delivery record, written by a dealer."""
    __tablename__ = "goods_delivery"

    delivery_info = Column(Text, nullable=False)
    recipient_name = Column(String(100), nullable=False)
    recipient_contact = Column(String(50), nullable=False)
    delivery_time = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    location = Column(String(255), nullable=False)
    notes = Column(Text, nullable=True)
