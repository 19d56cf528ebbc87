"""
Chain transaction ledger model.

Every transaction confirmed by the chain gateway is recorded here with the
parameters that were submitted.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, Enum
from sqlalchemy.sql import func
from seatrace.app.db.session import Base
from seatrace.app.models.goods_enums import Stage


class ChainTransaction(Base):
    """Confirmed chain transaction."""
    __tablename__ = "chain_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    tx_hash = Column(String(66), unique=True, nullable=False, index=True)
    function_name = Column(String(50), nullable=False)
    good_id = Column(String(64), nullable=False, index=True)
    stage = Column(Enum(Stage), nullable=False)
    caller_address = Column(String(66), nullable=True)

    # Submitted parameters
    content = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<ChainTransaction(tx_hash='{self.tx_hash}', function='{self.function_name}', good_id='{self.good_id}')>"
