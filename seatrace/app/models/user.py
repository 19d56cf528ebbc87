"""
User database model.

Users act on behalf of exactly one company, except super admins.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from seatrace.app.db.session import Base
from seatrace.app.models.enums import UserRole


class User(Base):
    """
    User model.

    Credentials are managed by the external auth service; this table only
    carries what lifecycle requests need to resolve an identity.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    real_name = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    role = Column(Enum(UserRole), default=UserRole.OPERATOR, nullable=False)

    # Null only for SUPER_ADMIN
    company_id = Column(Integer, ForeignKey('companies.id'), index=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}', company_id={self.company_id})>"
