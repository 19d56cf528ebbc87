"""
Goods database model.

A good is a tracked batch identified by its business ``good_id``, which is
shared with the chain. It is created once at registration and never deleted
through the lifecycle API.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from seatrace.app.db.session import Base
from seatrace.app.models.goods_enums import GoodsStatus


class Good(Base):
    """
    Good model.

    ``status`` is the coarse lifecycle position and only moves forward.
    Stage records are the source of truth for whether a stage happened.
    """
    __tablename__ = "goods"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Business identifier, shared with the chain
    good_id = Column(String(64), unique=True, nullable=False, index=True)
    good_name = Column(String(100), nullable=False)

    # Ownership
    owner_company_id = Column(Integer, ForeignKey('companies.id'), nullable=False, index=True)

    description = Column(Text, nullable=True)
    batch_number = Column(String(50), nullable=True)

    # Lifecycle
    status = Column(Enum(GoodsStatus), default=GoodsStatus.PRODUCED, nullable=False, index=True)
    blockchain_tx_hash = Column(String(66), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Good(id={self.id}, good_id='{self.good_id}', status='{self.status.value}')>"
