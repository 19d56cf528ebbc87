"""
Chain gateway Pydantic schemas.

Results returned by the chain gateway client and the on-chain trace view.
"""

from pydantic import BaseModel, Field
from typing import Optional


class ChainCallResult(BaseModel):
    """Outcome of one chain transaction as reported by the gateway."""
    transaction_hash: str
    status_message: str = ""


class ChainTrace(BaseModel):
    """
    Trace of one good as stored on chain by the traceability contract.

    Company fields hold the on-chain company ids; the ``*_company`` fields are
    filled with display names when the trace is assembled.
    """
    good_id: str
    good_name: str = ""
    owner_company_id: str = ""
    owner_company: Optional[str] = None
    register_time: Optional[str] = None

    ship_exists: bool = False
    ship_company_id: str = ""
    ship_company: Optional[str] = None
    ship_operator_addr: str = ""
    transport_info: str = ""
    ship_time: Optional[str] = None

    inspect_exists: bool = False
    port_company_id: str = ""
    port_company: Optional[str] = None
    inspect_operator_addr: str = ""
    inspection_info: str = ""
    inspect_time: Optional[str] = None

    delivery_exists: bool = False
    dealer_company_id: str = ""
    dealer_company: Optional[str] = None
    delivery_operator_addr: str = ""
    delivery_info: str = ""
    delivery_time: Optional[str] = None

    @property
    def completed_stages(self) -> int:
        # Registration always exists on chain once the trace is readable
        return 1 + sum([self.ship_exists, self.inspect_exists, self.delivery_exists])


class ChainGoodStatus(BaseModel):
    """On-chain status code of a good."""
    good_id: str
    status_code: int = Field(..., description="1=Produced, 2=Shipped, 3=Inspected, 4=Delivered")
    status_text: str = ""
