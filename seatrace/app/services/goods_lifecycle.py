"""
Goods lifecycle service.

Records the four lifecycle stages of a good and mirrors each one on chain.
Every operation follows the same order:

    authorize -> load -> validate state -> persist stage record
              -> call chain -> reconcile

The stage record is committed before the chain is called. A chain failure
leaves the record FAILED without a transaction hash and the good's status
unchanged; the caller gets PendingChainConfirmationError and the record can
be resubmitted later (retry endpoint or reconciler). The good's status is
only advanced by a conditional update from the stage's predecessor status.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from seatrace.app.core.config import settings
from seatrace.app.core.exceptions import (
    ChainGatewayError,
    ConcurrentTransitionError,
    InsufficientPermissionsError,
    PendingChainConfirmationError,
    PersistenceError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from seatrace.app.core.identity import Identity
from seatrace.app.domain.lifecycle.stages import (
    ORDERED_STAGES,
    STAGE_RULES,
    StageRule,
    ensure_company_type,
    ensure_transition_allowed,
)
from seatrace.app.models.chain_transaction import ChainTransaction
from seatrace.app.models.company import Company
from seatrace.app.models.goods import Good
from seatrace.app.models.goods_enums import ChainConfirmation, GoodsStatus, Stage, status_text
from seatrace.app.schemas.goods import (
    GoodSummary,
    GoodsDeliverRequest,
    GoodsInspectRequest,
    GoodsRegisterRequest,
    GoodsShipRequest,
    TraceView,
)
from seatrace.app.services.audit import AuditAction, log_event
from seatrace.app.services.chain_gateway import ChainGatewayClient
from seatrace.app.services.trace_assembler import TraceAssembler

logger = logging.getLogger("seatrace.lifecycle")

CHAIN_SUCCESS = "Success"


def generate_good_id(company_id: int, now: Optional[datetime] = None) -> str:
    """Business identifier: ``G`` + company id + date + 8 random hex chars."""
    now = now or datetime.now(timezone.utc)
    return f"G{company_id}{now:%Y%m%d}{uuid.uuid4().hex[:8]}"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class GoodsLifecycleService:
    """
    Lifecycle engine for goods.

    Holds no state between calls: every operation re-reads the good and its
    stage records from the database.
    """

    def __init__(self, db: AsyncSession, gateway: ChainGatewayClient):
        self.db = db
        self.gateway = gateway

    # Operations

    async def register(self, request: GoodsRegisterRequest, identity: Identity) -> GoodSummary:
        """Register a new good and its production record (producer only)."""
        rule = STAGE_RULES[Stage.PRODUCTION]
        company = await self._acting_company(rule, identity)

        # Stored as submitted; blank-only values are rejected
        good_name = request.good_name
        location = request.location
        if not good_name.strip():
            raise ValidationFailedError("Good name is required", details={"field": "good_name"})
        if not location.strip():
            raise ValidationFailedError("Production location is required", details={"field": "location"})
        self._ensure_chain_identity(company)

        good, record = await self._insert_good(request, good_name, location, company, identity)
        logger.info(
            "Good registered [goodID=%s, company=%s, operator=%s]",
            good.good_id, company.id, identity.username
        )
        return await self.submit_to_chain(rule, good, record, company, identity)

    async def ship(self, request: GoodsShipRequest, identity: Identity) -> GoodSummary:
        """Record transport of a produced good (shipper only)."""
        return await self._record_stage(
            STAGE_RULES[Stage.TRANSPORT],
            request.good_id,
            identity,
            {
                "start_location": request.start_location,
                "end_location": request.end_location,
                "transport_info": request.transport_info,
                "end_time": request.end_time,
                "tracking_number": request.tracking_number,
            },
        )

    async def inspect(self, request: GoodsInspectRequest, identity: Identity) -> GoodSummary:
        """Record inspection of a shipped good (inspector only)."""
        return await self._record_stage(
            STAGE_RULES[Stage.INSPECTION],
            request.good_id,
            identity,
            {
                "inspection_info": request.inspection_info,
                "quality_score": request.quality_score,
                "pass_status": request.pass_status,
                "location": request.location,
                "notes": request.notes,
            },
        )

    async def deliver(self, request: GoodsDeliverRequest, identity: Identity) -> GoodSummary:
        """Record delivery of an inspected good (dealer only)."""
        return await self._record_stage(
            STAGE_RULES[Stage.DELIVERY],
            request.good_id,
            identity,
            {
                "delivery_info": request.delivery_info,
                "recipient_name": request.recipient_name,
                "recipient_contact": request.recipient_contact,
                "location": request.location,
                "notes": request.notes,
            },
        )

    async def retry_chain_confirmation(self, good_id: str, identity: Identity) -> GoodSummary:
        """
        Resubmit the earliest unconfirmed stage of a good to the chain.

        Only the company that recorded the stage may resubmit it.
        """
        good = await self._load_good(good_id)
        for stage in ORDERED_STAGES:
            rule = STAGE_RULES[stage]
            record = await self.get_stage_record(rule, good.good_id)
            if record is not None and not record.is_confirmed:
                break
        else:
            raise ValidationFailedError(
                f"Good {good_id} has no stage awaiting chain confirmation",
                details={"good_id": good_id}
            )

        if identity.company_id is None or identity.company_id != record.company_id:
            raise InsufficientPermissionsError(
                f"Only the company that recorded {rule.label.lower()} can resubmit it",
                details={"stage": rule.stage.value}
            )
        company = await self._acting_company(rule, identity)
        self._ensure_chain_identity(company)
        if rule.required_status is not None:
            ensure_transition_allowed(rule, good)

        await self.claim(rule, record)
        return await self.submit_to_chain(rule, good, record, company, identity)

    async def get_trace(self, good_id: str, include_chain: Optional[bool] = None) -> TraceView:
        return await TraceAssembler(self.db, self.gateway).get_trace(good_id, include_chain)

    # Chain submission, shared with the reconciler

    def is_claimable(self, record: Any, now: Optional[datetime] = None) -> bool:
        """FAILED records, and PENDING records abandoned longer than the stale window."""
        if record.chain_status == ChainConfirmation.FAILED:
            return True
        if record.chain_status != ChainConfirmation.PENDING:
            return False
        now = now or datetime.now(timezone.utc)
        updated_at = _as_utc(record.updated_at)
        return updated_at is not None and now - updated_at >= timedelta(seconds=settings.chain_pending_stale_seconds)

    async def claim(self, rule: StageRule, record: Any, payload: Optional[Dict[str, Any]] = None) -> None:
        """
        Take ownership of an unconfirmed record before resubmitting it.

        Conditional on the observed status and attempt counter so that two
        concurrent retries cannot both reach the chain.
        """
        if not self.is_claimable(record):
            raise ConcurrentTransitionError(
                f"{rule.label} for good {record.good_id} is already being submitted to the chain",
                details={"good_id": record.good_id, "stage": rule.stage.value}
            )

        good_id = record.good_id
        model = rule.record_model
        values = dict(payload or {})
        values.update(chain_status=ChainConfirmation.PENDING, chain_attempts=model.chain_attempts + 1)
        stmt = (
            update(model)
            .where(
                model.id == record.id,
                model.chain_status == record.chain_status,
                model.chain_attempts == record.chain_attempts,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            if result.rowcount != 1:
                await self.db.rollback()
                raise ConcurrentTransitionError(
                    f"{rule.label} for good {good_id} was claimed by another request",
                    details={"good_id": good_id, "stage": rule.stage.value}
                )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to claim stage record [goodID=%s, stage=%s]: %s", good_id, rule.stage.value, e)
            raise PersistenceError(f"Failed to update {rule.label.lower()} record", details={"good_id": good_id})
        await self.db.refresh(record)

    async def submit_to_chain(
        self,
        rule: StageRule,
        good: Good,
        record: Any,
        company: Company,
        identity: Optional[Identity] = None,
    ) -> GoodSummary:
        """
        Call the chain for a claimed record and reconcile the outcome.

        ``identity`` is None when the reconciler resubmits on its own.
        """
        params = rule.chain_params(good, record)
        try:
            result = await self.gateway.call(rule.chain_function, params, company.blockchain_address)
        except ChainGatewayError as e:
            await self._mark_failed(rule, good, record, e.message, identity)
        except asyncio.CancelledError:
            await self._record_failure(rule, good, record, "Request cancelled before chain confirmation", identity)
            raise
        else:
            if result.status_message != CHAIN_SUCCESS:
                await self._mark_failed(
                    rule, good, record,
                    f"Chain returned status '{result.status_message or 'empty'}'",
                    identity,
                )
            return await self._confirm(rule, good, record, company, params, result.transaction_hash, identity)

    # Internals

    async def _record_stage(
        self, rule: StageRule, good_id: str, identity: Identity, payload: Dict[str, Any]
    ) -> GoodSummary:
        company = await self._acting_company(rule, identity)
        self._ensure_chain_identity(company)
        good = await self._load_good(good_id)
        ensure_transition_allowed(rule, good)

        record = await self._upsert_stage_record(rule, good, company, identity, payload)
        if record.is_confirmed:
            # Chain already holds this stage; only the status advance is missing
            await self._advance_status(rule, good, record.blockchain_tx_hash)
            await self.db.commit()
            await self.db.refresh(good)
            return await self._summary(good, rule, record)
        return await self.submit_to_chain(rule, good, record, company, identity)

    async def _upsert_stage_record(
        self, rule: StageRule, good: Good, company: Company, identity: Identity, payload: Dict[str, Any]
    ):
        """
        Insert the stage record, or reuse the unconfirmed one left by an
        earlier attempt. The unique ``good_id`` per stage table makes a
        concurrent second insert fail instead of duplicating the stage.
        """
        values = dict(
            payload,
            company_id=company.id,
            company_name=company.company_name,
            operator_id=identity.user_id,
            operator_name=identity.display_name,
        )

        good_id = good.good_id
        existing = await self.get_stage_record(rule, good_id)
        if existing is None:
            record = rule.record_model(
                goods_id=good.id,
                good_id=good_id,
                chain_status=ChainConfirmation.PENDING,
                chain_attempts=1,
                **values,
            )
            self.db.add(record)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.warning(
                    "Concurrent %s insert detected, reusing existing record [goodID=%s]",
                    rule.stage.value, good_id
                )
                await self.db.refresh(good)
                await self.db.refresh(company)
                existing = await self.get_stage_record(rule, good_id)
                if existing is None:
                    raise PersistenceError(
                        f"Failed to save {rule.label.lower()} record",
                        details={"good_id": good_id}
                    )
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error("Failed to save %s record [goodID=%s]: %s", rule.stage.value, good_id, e)
                raise PersistenceError(
                    f"Failed to save {rule.label.lower()} record",
                    details={"good_id": good_id}
                )
            else:
                await self.db.refresh(record)
                return record

        if existing.is_confirmed:
            return existing

        logger.info(
            "Reusing unconfirmed %s record [goodID=%s, attempts=%s]",
            rule.stage.value, good_id, existing.chain_attempts
        )
        await self.claim(rule, existing, values)
        return existing

    async def _insert_good(
        self,
        request: GoodsRegisterRequest,
        good_name: str,
        location: str,
        company: Company,
        identity: Identity,
    ):
        """Insert the good and its production record in one transaction, minting a fresh id on collision."""
        max_attempts = max(1, settings.good_id_max_attempts)
        company_id = company.id
        for attempt in range(1, max_attempts + 1):
            good_id = generate_good_id(company_id)
            good = Good(
                good_id=good_id,
                good_name=good_name,
                owner_company_id=company.id,
                description=request.description,
                batch_number=request.batch_number,
                status=GoodsStatus.PRODUCED,
            )
            try:
                self.db.add(good)
                await self.db.flush()
                record = STAGE_RULES[Stage.PRODUCTION].record_model(
                    goods_id=good.id,
                    good_id=good_id,
                    company_id=company.id,
                    company_name=company.company_name,
                    operator_id=identity.user_id,
                    operator_name=identity.display_name,
                    location=location,
                    batch_info=request.batch_info,
                    quality_level=request.quality_level,
                    expiry_date=request.expiry_date,
                    chain_status=ChainConfirmation.PENDING,
                    chain_attempts=1,
                )
                self.db.add(record)
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.warning("Good id collision, retrying [goodID=%s, attempt=%d]", good_id, attempt)
                await self.db.refresh(company)
                continue
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error("Failed to create good [company=%s]: %s", company_id, e)
                raise PersistenceError("Failed to create good")

            await self.db.refresh(good)
            await self.db.refresh(record)
            return good, record

        raise PersistenceError(
            "Failed to create good: could not allocate a unique good id",
            details={"attempts": max_attempts}
        )

    async def _confirm(
        self,
        rule: StageRule,
        good: Good,
        record: Any,
        company: Company,
        params: list,
        tx_hash: str,
        identity: Optional[Identity],
    ) -> GoodSummary:
        """Write the hash back and advance the good's status in one transaction."""
        model = rule.record_model
        good_id = good.good_id
        try:
            await self.db.execute(
                update(model)
                .where(model.id == record.id)
                .values(
                    blockchain_tx_hash=tx_hash,
                    chain_status=ChainConfirmation.CONFIRMED,
                    last_chain_error=None,
                    confirmed_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            await self._advance_status(rule, good, tx_hash)
            self.db.add(ChainTransaction(
                tx_hash=tx_hash,
                function_name=rule.chain_function,
                good_id=good.good_id,
                stage=rule.stage,
                caller_address=company.blockchain_address,
                content={"params": params},
            ))
            await self.db.commit()
        except ConcurrentTransitionError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Chain confirmed but write-back failed [goodID=%s, stage=%s, txHash=%s]: %s",
                good_id, rule.stage.value, tx_hash, e
            )
            raise PersistenceError(
                f"Failed to record chain confirmation for {rule.label.lower()}",
                details={"good_id": good_id, "tx_hash": tx_hash}
            )

        await self.db.refresh(record)
        await self.db.refresh(good)
        logger.info(
            "%s confirmed on chain [goodID=%s, status=%s, txHash=%s]",
            rule.label, good.good_id, good.status.value, tx_hash
        )

        summary = await self._summary(good, rule, record)
        await self._audit(
            (good, record),
            action=rule.audit_action if identity is not None else AuditAction.CHAIN_RECONCILED,
            actor_id=identity.user_id if identity else None,
            actor_username=identity.username if identity else "system",
            company_id=company.id,
            good_id=good.good_id,
            metadata={"stage": rule.stage.value, "tx_hash": tx_hash, "attempts": record.chain_attempts},
        )
        return summary

    async def _advance_status(self, rule: StageRule, good: Good, tx_hash: str) -> None:
        """
        Advance the good from the stage's predecessor status, affecting exactly
        one row. Registration has no predecessor and only stores the hash, and
        only while the good is still at PRODUCED so a late confirmation does
        not replace the hash of a later stage.
        """
        if rule.required_status is None:
            await self.db.execute(
                update(Good)
                .where(Good.id == good.id, Good.status == rule.target_status)
                .values(blockchain_tx_hash=tx_hash)
                .execution_options(synchronize_session=False)
            )
            return

        result = await self.db.execute(
            update(Good)
            .where(Good.id == good.id, Good.status == rule.required_status)
            .values(status=rule.target_status, blockchain_tx_hash=tx_hash)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Status transition lost a race [goodID=%s, from=%s, to=%s]",
                good.good_id, rule.required_status.value, rule.target_status.value
            )
            raise ConcurrentTransitionError(
                f"Good {good.good_id} is no longer in status '{status_text(rule.required_status)}'",
                details={"good_id": good.good_id, "stage": rule.stage.value}
            )

    async def _mark_failed(
        self, rule: StageRule, good: Good, record: Any, error: str, identity: Optional[Identity]
    ):
        """Keep the record without a hash, mark it FAILED and raise PendingChainConfirmationError."""
        summary = await self._record_failure(rule, good, record, error, identity)
        raise PendingChainConfirmationError(
            summary.good_id, rule.stage.value, error, good=summary.model_dump(mode="json")
        )

    async def _record_failure(
        self, rule: StageRule, good: Good, record: Any, error: str, identity: Optional[Identity]
    ) -> GoodSummary:
        model = rule.record_model
        good_id = good.good_id
        try:
            await self.db.execute(
                update(model)
                .where(model.id == record.id, model.chain_status == ChainConfirmation.PENDING)
                .values(chain_status=ChainConfirmation.FAILED, last_chain_error=error[:1000])
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to mark %s record as failed [goodID=%s]: %s", rule.stage.value, good_id, e)
            raise PersistenceError(
                f"Failed to update {rule.label.lower()} record",
                details={"good_id": good_id}
            )

        await self.db.refresh(record)
        await self.db.refresh(good)
        logger.warning(
            "%s pending chain confirmation [goodID=%s, attempts=%s, error=%s]",
            rule.label, good.good_id, record.chain_attempts, error
        )
        summary = await self._summary(good, rule, record)
        await self._audit(
            (good, record),
            action=AuditAction.CHAIN_CONFIRMATION_FAILED,
            actor_id=identity.user_id if identity else None,
            actor_username=identity.username if identity else "system",
            company_id=record.company_id,
            good_id=good.good_id,
            metadata={"stage": rule.stage.value, "error": error, "attempts": record.chain_attempts},
        )
        return summary

    async def _audit(self, instances: tuple, **event) -> None:
        """
        Record an audit event after the stage outcome is committed.

        A failed audit write is logged and dropped; the outcome already
        committed is what the caller is told.
        """
        try:
            await log_event(self.db, **event)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(
                "Audit event not recorded [action=%s, goodID=%s]: %s",
                event.get("action"), event.get("good_id"), e
            )
            for instance in instances:
                await self.db.refresh(instance)

    async def _acting_company(self, rule: StageRule, identity: Identity) -> Company:
        """Resolve the caller's company and check it may record this stage."""
        if identity.company_id is None:
            raise InsufficientPermissionsError(
                "User is not associated with a company",
                details={"stage": rule.stage.value}
            )
        company = await self.db.get(Company, identity.company_id)
        ensure_company_type(rule, company)
        return company

    @staticmethod
    def _ensure_chain_identity(company: Company) -> None:
        if not company.blockchain_address:
            raise ValidationFailedError(
                "Company has no blockchain address",
                details={"company_id": company.id}
            )

    async def _load_good(self, good_id: str) -> Good:
        result = await self.db.execute(select(Good).where(Good.good_id == good_id).execution_options(populate_existing=True))
        good = result.scalar_one_or_none()
        if good is None:
            raise ResourceNotFoundError("Good", good_id)
        return good

    async def get_stage_record(self, rule: StageRule, good_id: str):
        model = rule.record_model
        result = await self.db.execute(select(model).where(model.good_id == good_id).execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def _summary(self, good: Good, rule: Optional[StageRule] = None, record: Any = None) -> GoodSummary:
        owner = await self.db.get(Company, good.owner_company_id)
        return GoodSummary(
            id=good.id,
            good_id=good.good_id,
            good_name=good.good_name,
            batch_number=good.batch_number,
            owner_company_id=good.owner_company_id,
            owner_company=owner.company_name if owner else "",
            description=good.description,
            status=good.status,
            status_text=status_text(good.status),
            blockchain_tx_hash=good.blockchain_tx_hash,
            stage=rule.stage if rule else None,
            chain_status=record.chain_status if record is not None else None,
            created_at=good.created_at,
            updated_at=good.updated_at,
        )
