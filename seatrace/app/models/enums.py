"""
User role and company type enumerations.

Defines the identity types for the traceability system.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        SUPER_ADMIN: System-level access, belongs to no company
        COMPANY_ADMIN: Manages one company's operators
        OPERATOR: Records lifecycle stages on behalf of their company
    """
    SUPER_ADMIN = "super_admin"
    COMPANY_ADMIN = "company_admin"
    OPERATOR = "operator"


class CompanyType(str, enum.Enum):
    """
    Company type enumeration.

    The type gates which lifecycle stage a company's users may record.
    """
    PRODUCER = "PRODUCER"
    SHIPPER = "SHIPPER"
    INSPECTOR = "INSPECTOR"  # Port / inspection authority
    DEALER = "DEALER"
