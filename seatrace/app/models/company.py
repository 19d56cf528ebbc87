"""
Company database model.

Companies are the tenants of the traceability platform. The company type
decides which lifecycle stage its operators may record.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
from seatrace.app.db.session import Base
from seatrace.app.models.enums import CompanyType


class Company(Base):
    """
    Company model.

    ``blockchain_address`` is issued by the chain gateway and is the identity
    presented for every transaction originated by this company's operators.
    """
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    company_name = Column(String(100), unique=True, nullable=False, index=True)
    company_type = Column(Enum(CompanyType), nullable=False, index=True)

    # Contact
    contact = Column(String(50), nullable=True)
    phone = Column(String(20), nullable=True)

    # Chain identity
    blockchain_address = Column(String(66), nullable=True)
    blockchain_tx_hash = Column(String(66), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.company_name}', type='{self.company_type.value}')>"
