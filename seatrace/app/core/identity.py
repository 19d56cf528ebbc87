"""
Request identity.

The caller of a lifecycle operation, resolved once per request from the
bearer token and passed explicitly into every service call.
"""

from typing import Optional
from pydantic import BaseModel
from seatrace.app.models.enums import UserRole


class Identity(BaseModel):
    user_id: int
    username: str
    real_name: Optional[str] = None
    role: UserRole
    company_id: Optional[int] = None  # None only for super admins

    class Config:
        frozen = True

    @property
    def display_name(self) -> str:
        return self.real_name or self.username
