"""
Security guards for role-based access control.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from seatrace.app.core.dependencies import get_current_user
from seatrace.app.core.identity import Identity
from seatrace.app.models.enums import UserRole


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/admin/ops/reconcile")
        async def reconcile(current_user: Identity = Depends(require_role([UserRole.SUPER_ADMIN]))):
            ...

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: Identity = Depends(get_current_user)) -> Identity:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )
        return current_user

    return role_checker


# Roles allowed to record lifecycle stages for their company
require_company_member = require_role([UserRole.OPERATOR, UserRole.COMPANY_ADMIN])
