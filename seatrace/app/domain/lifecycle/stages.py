"""
Goods lifecycle state machine.

Each stage is described once: which company type may record it, which status
the good must be in, which status it moves to, and which contract function
mirrors it on chain.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Type

from seatrace.app.core.exceptions import InsufficientPermissionsError, InvalidGoodStateError
from seatrace.app.models.company import Company
from seatrace.app.models.enums import CompanyType
from seatrace.app.models.goods import Good
from seatrace.app.models.goods_enums import GoodsStatus, Stage, status_text
from seatrace.app.models.stage_records import (
    GoodsProduction, GoodsTransport, GoodsInspection, GoodsDelivery
)
from seatrace.app.services.audit import AuditAction


@dataclass(frozen=True)
class StageRule:
    stage: Stage
    label: str
    company_type: CompanyType
    required_status: Optional[GoodsStatus]  # None: recorded at registration
    target_status: GoodsStatus
    chain_function: str
    record_model: Type
    chain_info_field: Optional[str]  # None: the good name is sent
    audit_action: str

    def chain_params(self, good: Good, record: Any) -> List[str]:
        """Parameters of the contract call mirroring this stage."""
        if self.chain_info_field is None:
            return [good.good_id, good.good_name]
        return [good.good_id, getattr(record, self.chain_info_field) or ""]


STAGE_RULES = {
    Stage.PRODUCTION: StageRule(
        stage=Stage.PRODUCTION,
        label="Production",
        company_type=CompanyType.PRODUCER,
        required_status=None,
        target_status=GoodsStatus.PRODUCED,
        chain_function="registerGood",
        record_model=GoodsProduction,
        chain_info_field=None,
        audit_action=AuditAction.GOOD_REGISTERED,
    ),
    Stage.TRANSPORT: StageRule(
        stage=Stage.TRANSPORT,
        label="Transport",
        company_type=CompanyType.SHIPPER,
        required_status=GoodsStatus.PRODUCED,
        target_status=GoodsStatus.SHIPPED,
        chain_function="shipGood",
        record_model=GoodsTransport,
        chain_info_field="transport_info",
        audit_action=AuditAction.GOOD_SHIPPED,
    ),
    Stage.INSPECTION: StageRule(
        stage=Stage.INSPECTION,
        label="Inspection",
        company_type=CompanyType.INSPECTOR,
        required_status=GoodsStatus.SHIPPED,
        target_status=GoodsStatus.INSPECTED,
        chain_function="inspectGood",
        record_model=GoodsInspection,
        chain_info_field="inspection_info",
        audit_action=AuditAction.GOOD_INSPECTED,
    ),
    Stage.DELIVERY: StageRule(
        stage=Stage.DELIVERY,
        label="Delivery",
        company_type=CompanyType.DEALER,
        required_status=GoodsStatus.INSPECTED,
        target_status=GoodsStatus.DELIVERED,
        chain_function="deliverGood",
        record_model=GoodsDelivery,
        chain_info_field="delivery_info",
        audit_action=AuditAction.GOOD_DELIVERED,
    ),
}

ORDERED_STAGES = [Stage.PRODUCTION, Stage.TRANSPORT, Stage.INSPECTION, Stage.DELIVERY]


def ensure_company_type(rule: StageRule, company: Optional[Company]) -> None:
    """Raise unless the acting company may record this stage."""
    if company is None or company.company_type != rule.company_type:
        raise InsufficientPermissionsError(
            f"Only {rule.company_type.value.lower()} companies can record {rule.label.lower()}",
            details={"required_company_type": rule.company_type.value, "stage": rule.stage.value}
        )


def ensure_transition_allowed(rule: StageRule, good: Good) -> None:
    """Raise unless the good is exactly in the stage's predecessor status."""
    if rule.required_status is None:
        raise InvalidGoodStateError(
            good.good_id, None, status_text(good.status),
            message=f"{rule.label} is only recorded when a good is registered"
        )
    if good.status != rule.required_status:
        raise InvalidGoodStateError(
            good.good_id,
            status_text(rule.required_status),
            status_text(good.status),
        )
