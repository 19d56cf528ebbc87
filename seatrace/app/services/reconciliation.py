"""
Chain reconciliation.

Resubmits stage records that were persisted but never confirmed on chain:
records whose last submission FAILED, and PENDING records older than
``chain_pending_stale_seconds`` (the request that owned them died). Each
good's records are processed in stage order and processing of a good stops
at its first failure, so a later stage is never confirmed before an earlier
one.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from seatrace.app.core.config import settings
from seatrace.app.core.exceptions import (
    ConcurrentTransitionError,
    PendingChainConfirmationError,
    PersistenceError,
)
from seatrace.app.db.session import AsyncSessionLocal
from seatrace.app.domain.lifecycle.stages import ORDERED_STAGES, STAGE_RULES
from seatrace.app.models.company import Company
from seatrace.app.models.goods import Good
from seatrace.app.models.goods_enums import ChainConfirmation
from seatrace.app.schemas.ops import ReconcileReport
from seatrace.app.services.chain_gateway import ChainGatewayClient, get_chain_gateway
from seatrace.app.services.goods_lifecycle import GoodsLifecycleService

logger = logging.getLogger("seatrace.reconcile")


class ChainReconciler:
    def __init__(self, db: AsyncSession, gateway: ChainGatewayClient):
        self.db = db
        self.gateway = gateway
        self.lifecycle = GoodsLifecycleService(db, gateway)

    async def find_candidates(self, limit: int) -> List[str]:
        """Business ids of goods with at least one resubmittable stage record, oldest first."""
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=settings.chain_pending_stale_seconds)
        seen = []
        for stage in ORDERED_STAGES:
            model = STAGE_RULES[stage].record_model
            result = await self.db.execute(
                select(model.good_id)
                .where(or_(
                    model.chain_status == ChainConfirmation.FAILED,
                    and_(model.chain_status == ChainConfirmation.PENDING, model.updated_at < cutoff),
                ))
                .order_by(model.updated_at, model.id)
                .limit(limit)
            )
            for good_id in result.scalars().all():
                if good_id not in seen:
                    seen.append(good_id)
        return seen[:limit]

    async def reconcile(self, limit: Optional[int] = None) -> ReconcileReport:
        """Run one reconciliation pass over at most ``limit`` goods."""
        limit = limit or settings.reconcile_batch_size
        report = ReconcileReport()

        for good_id in await self.find_candidates(limit):
            report.good_ids.append(good_id)
            await self._reconcile_good(good_id, report)

        if report.examined:
            logger.info(
                "Reconciliation pass finished [examined=%d, confirmed=%d, failed=%d, skipped=%d]",
                report.examined, report.confirmed, report.failed, report.skipped
            )
        return report

    async def _reconcile_good(self, good_id: str, report: ReconcileReport) -> None:
        result = await self.db.execute(select(Good).where(Good.good_id == good_id).execution_options(populate_existing=True))
        good = result.scalar_one_or_none()
        if good is None:
            return

        for stage in ORDERED_STAGES:
            rule = STAGE_RULES[stage]
            record = await self.lifecycle.get_stage_record(rule, good.good_id)
            if record is None:
                break
            if record.is_confirmed:
                continue

            report.examined += 1
            if not self.lifecycle.is_claimable(record):
                # Submission still in flight
                report.skipped += 1
                break
            if rule.required_status is not None and good.status != rule.required_status:
                logger.warning(
                    "Skipping %s: good status does not match [goodID=%s, status=%s]",
                    stage.value, good.good_id, good.status.value
                )
                report.skipped += 1
                break

            company = await self.db.get(Company, record.company_id)
            if company is None or not company.blockchain_address:
                report.skipped += 1
                break

            try:
                await self.lifecycle.claim(rule, record)
            except ConcurrentTransitionError:
                report.skipped += 1
                break

            try:
                await self.lifecycle.submit_to_chain(rule, good, record, company)
            except PendingChainConfirmationError:
                report.failed += 1
                break
            except (ConcurrentTransitionError, PersistenceError) as e:
                logger.error("Reconciliation write-back failed [goodID=%s, stage=%s]: %s", good.good_id, stage.value, e.message)
                report.failed += 1
                break
            report.confirmed += 1


async def run_reconcile_loop(interval: float, stop: asyncio.Event):
    """Background loop running a reconciliation pass every ``interval`` seconds until ``stop`` is set."""
    logger.info("Chain reconciliation loop started [interval=%ss]", interval)
    while not stop.is_set():
        try:
            async with AsyncSessionLocal() as db:
                await ChainReconciler(db, get_chain_gateway()).reconcile()
        except Exception:
            logger.exception("Reconciliation pass failed")

        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
    logger.info("Chain reconciliation loop stopped")
