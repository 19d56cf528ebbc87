"""
Trace assembler.

Builds the public trace of a good from its stage records and, optionally,
the trace stored on chain. Read-only: nothing here writes to the database
or submits chain transactions.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from seatrace.app.core.config import settings
from seatrace.app.core.exceptions import ChainGatewayError, ResourceNotFoundError
from seatrace.app.domain.lifecycle.stages import ORDERED_STAGES, STAGE_RULES
from seatrace.app.models.company import Company
from seatrace.app.models.goods import Good
from seatrace.app.models.goods_enums import Stage, status_text
from seatrace.app.schemas.chain import ChainTrace
from seatrace.app.schemas.goods import (
    DeliveryTrace,
    InspectionTrace,
    ProductionTrace,
    TraceBasic,
    TraceView,
    TransportTrace,
)
from seatrace.app.services.chain_gateway import ChainGatewayClient

logger = logging.getLogger("seatrace.trace")

_TRACE_SCHEMAS = {
    Stage.PRODUCTION: ProductionTrace,
    Stage.TRANSPORT: TransportTrace,
    Stage.INSPECTION: InspectionTrace,
    Stage.DELIVERY: DeliveryTrace,
}

# Stage payload columns copied into the trace, per stage
_PAYLOAD_FIELDS = {
    Stage.PRODUCTION: ("location", "produced_at", "batch_info", "quality_level", "expiry_date"),
    Stage.TRANSPORT: (
        "start_location", "end_location", "transport_info",
        "start_time", "end_time", "actual_arrival_time", "tracking_number",
    ),
    Stage.INSPECTION: ("inspection_info", "quality_score", "pass_status", "inspection_time", "location", "notes"),
    Stage.DELIVERY: ("delivery_info", "recipient_name", "recipient_contact", "delivery_time", "location", "notes"),
}


class TraceAssembler:
    def __init__(self, db: AsyncSession, gateway: Optional[ChainGatewayClient] = None):
        self.db = db
        self.gateway = gateway
        self._company_names: Dict[int, str] = {}

    async def get_trace(self, good_id: str, include_chain: Optional[bool] = None) -> TraceView:
        """
        Assemble the trace of one good.

        Stage sections appear only when the stage record exists. The chain
        trace is a cross-check: if it cannot be read the database trace is
        still returned with ``chain_error`` set.
        """
        if include_chain is None:
            include_chain = settings.trace_include_chain

        result = await self.db.execute(select(Good).where(Good.good_id == good_id).execution_options(populate_existing=True))
        good = result.scalar_one_or_none()
        if good is None:
            raise ResourceNotFoundError("Good", good_id)

        view = TraceView(
            basic=TraceBasic(
                id=good.id,
                good_id=good.good_id,
                good_name=good.good_name,
                batch_number=good.batch_number,
                description=good.description,
                owner_company_id=good.owner_company_id,
                status=good.status,
                status_text=status_text(good.status),
                blockchain_hash=good.blockchain_tx_hash,
                created_at=good.created_at,
            )
        )

        for stage in ORDERED_STAGES:
            model = STAGE_RULES[stage].record_model
            result = await self.db.execute(select(model).where(model.good_id == good.good_id).execution_options(populate_existing=True))
            record = result.scalar_one_or_none()
            if record is None:
                continue

            section = _TRACE_SCHEMAS[stage](
                id=record.id,
                company_id=record.company_id,
                company_name=record.company_name or "",
                operator_name=record.operator_name,
                blockchain_hash=record.blockchain_tx_hash,
                chain_status=record.chain_status,
                confirmed=record.is_confirmed,
                **{field: getattr(record, field) for field in _PAYLOAD_FIELDS[stage]},
            )
            setattr(view, stage.value, section)
            if not record.is_confirmed:
                view.pending_stages.append(stage)

        # Names are resolved last: a failed lookup rolls the session back
        view.basic.owner_company = await self._company_name(view.basic.owner_company_id)
        for stage in ORDERED_STAGES:
            section = getattr(view, stage.value)
            if section is not None and not section.company_name:
                section.company_name = await self._company_name(section.company_id)

        if include_chain and self.gateway is not None:
            try:
                chain = await self.gateway.get_full_trace(view.basic.good_id)
            except ChainGatewayError as e:
                logger.warning("Chain trace unavailable, returning database trace [goodID=%s]: %s", good_id, e.message)
                view.chain_error = e.message
            else:
                view.chain = await self._with_company_names(chain)
                view.discrepancies = self._discrepancies(view, chain)

        return view

    async def _company_name(self, company_id: Optional[int]) -> str:
        """Display name of a company; an empty string when it cannot be resolved."""
        if company_id is None:
            return ""
        if company_id in self._company_names:
            return self._company_names[company_id]
        try:
            company = await self.db.get(Company, company_id)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("Company lookup failed [companyID=%s]: %s", company_id, e)
            return ""
        name = company.company_name if company else ""
        self._company_names[company_id] = name
        return name

    async def _chain_company_name(self, raw_id: str) -> Optional[str]:
        try:
            company_id = int(raw_id)
        except (TypeError, ValueError):
            return None
        return await self._company_name(company_id) or None

    async def _with_company_names(self, chain: ChainTrace) -> ChainTrace:
        return chain.model_copy(update={
            "owner_company": await self._chain_company_name(chain.owner_company_id),
            "ship_company": await self._chain_company_name(chain.ship_company_id),
            "port_company": await self._chain_company_name(chain.port_company_id),
            "dealer_company": await self._chain_company_name(chain.dealer_company_id),
        })

    @staticmethod
    def _discrepancies(view: TraceView, chain: ChainTrace) -> List[str]:
        """Stages whose database confirmation disagrees with the chain."""
        on_chain = {
            Stage.PRODUCTION: bool(chain.register_time or chain.good_name),
            Stage.TRANSPORT: chain.ship_exists,
            Stage.INSPECTION: chain.inspect_exists,
            Stage.DELIVERY: chain.delivery_exists,
        }
        issues = []
        for stage in ORDERED_STAGES:
            section = getattr(view, stage.value)
            confirmed = section is not None and section.confirmed
            if confirmed and not on_chain[stage]:
                issues.append(f"{stage.value}: confirmed in database but missing on chain")
            elif on_chain[stage] and not confirmed:
                issues.append(f"{stage.value}: present on chain but not confirmed in database")
        return issues
