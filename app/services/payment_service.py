"""Payment recording and reversal.

A payment against an enrolment buys entitlement: weekly plans move the
paid-through date, block plans add credits. Undo never subtracts; it
rebuilds the enrolment's entitlement from the invoices that are still paid.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Union

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.credit import EnrolmentCreditEvent, EnrolmentCreditEventType
from app.models.enrolment import BillingType, CoverageAuditReason, Enrolment, EnrolmentPlan
from app.models.family import Family
from app.models.invoice import Invoice, InvoiceStatus
from app.models.payment import Payment, PaymentAllocation, PaymentStatus
from app.services.coverage_service import (
    compute_block_pay_ahead_coverage,
    compute_weekly_coverage,
)
from app.services.credit_service import CreditService
from app.services.enrolment_service import EnrolmentService
from app.services.invoice_service import InvoiceService
from app.services.pricing_service import PricingService
from app.services.schedule_service import load_enrolment_schedule
from app.utils.day_keys import (
    DayKey,
    to_day_key,
    to_optional_day_key,
)
from core.db import UnitOfWork
from core.exceptions import BadRequestException, NotFoundException, ValidationException
from core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_REVERSAL_REASON = "Payment reversed via admin undo"


@dataclass
class PaymentResult:
    payment: Payment
    receipt_invoice_id: Optional[str] = None
    replayed: bool = False


@dataclass
class _Entitlement:
    coverage_start: Optional[DayKey] = None
    coverage_end: Optional[DayKey] = None
    credits_purchased: Optional[int] = None


def resolve_credits_purchased(invoice: Invoice, plan: EnrolmentPlan) -> int:
    """Credits a paid invoice grants on a block plan: never below the plan's
    block times the invoiced quantity."""
    if plan.billing_type == BillingType.PER_WEEK:
        return 0
    computed = PricingService.resolve_block_length(plan.block_class_count) * invoice.enrolment_quantity
    if invoice.credits_purchased and invoice.credits_purchased > 0:
        return max(invoice.credits_purchased, computed)
    return computed


class PaymentService:
    """Service for recording and undoing family payments."""

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session
        self.credit_service = CreditService(db_session)
        self.enrolment_service = EnrolmentService(db_session)
        self.invoice_service = InvoiceService(db_session)

    async def get_payment(self, payment_id: str) -> Payment:
        payment = await Payment.get_by_id(self.db_session, payment_id)
        if not payment:
            raise NotFoundException("Payment not found.")
        return payment

    async def record_payment(
        self,
        family_id: str,
        amount_cents: int,
        enrolment_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        custom_block_length: Optional[Union[int, float]] = None,
        paid_at: Optional[datetime] = None,
        method: Optional[str] = None,
        note: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> PaymentResult:
        """
        Record a payment and apply what it buys.

        Replaying an idempotency key returns the first payment untouched. A
        concurrent duplicate that loses the insert race is rolled back and
        answered with the winner.

        Raises:
            ValidationException: Non-positive amount
            InvalidBlockLength: Custom block length rejected for the plan
            InvalidEntitlement: Weekly plan without a duration
            BadRequestException: Enrolment plan missing or family mismatch
            NotFoundException: Family not found
        """
        if amount_cents <= 0:
            raise ValidationException("Payment amount must be positive.")

        try:
            return await self._record_payment(
                family_id,
                amount_cents,
                enrolment_id,
                idempotency_key,
                custom_block_length,
                paid_at or datetime.now(timezone.utc),
                method,
                note,
                actor_id,
            )
        except IntegrityError:
            if not idempotency_key:
                raise
            replay = await self._replay(family_id, idempotency_key)
            if replay is None:
                raise
            logger.info(f"Payment {replay.payment.id} won a concurrent insert for key {idempotency_key}")
            return replay

    async def _replay(self, family_id: str, idempotency_key: str) -> Optional[PaymentResult]:
        existing = await Payment.get_by_idempotency_key(self.db_session, family_id, idempotency_key)
        if not existing:
            return None
        receipt_invoice_id = existing.allocations[0].invoice_id if existing.allocations else None
        return PaymentResult(existing, receipt_invoice_id, replayed=True)

    async def _record_payment(
        self,
        family_id: str,
        amount_cents: int,
        enrolment_id: Optional[str],
        idempotency_key: Optional[str],
        custom_block_length: Optional[Union[int, float]],
        paid_at: datetime,
        method: Optional[str],
        note: Optional[str],
        actor_id: Optional[str],
    ) -> PaymentResult:
        async with UnitOfWork(self.db_session):
            if idempotency_key:
                replay = await self._replay(family_id, idempotency_key)
                if replay is not None:
                    logger.info(f"Replayed payment {replay.payment.id} for key {idempotency_key}")
                    return replay

            family = await Family.get_by_id(self.db_session, family_id)
            if not family:
                raise NotFoundException("Family not found.")

            payment = Payment(
                family_id=family_id,
                amount_cents=amount_cents,
                status=PaymentStatus.COMPLETED,
                paid_at=paid_at,
                method=method.strip() if method and method.strip() else None,
                note=note.strip() if note and note.strip() else None,
                idempotency_key=idempotency_key,
                allocations=[],
            )

            if not enrolment_id:
                self.db_session.add(payment)
                await self.db_session.flush()
                result = PaymentResult(payment)
            else:
                result = await self._apply_to_enrolment(
                    payment, enrolment_id, custom_block_length, actor_id
                )

        logger.info(
            f"Recorded payment {result.payment.id} of {result.payment.amount_cents}c "
            f"for family {family_id}"
            + (f", receipt {result.receipt_invoice_id}" if result.receipt_invoice_id else "")
        )
        return result

    async def _apply_to_enrolment(
        self,
        payment: Payment,
        enrolment_id: str,
        custom_block_length: Optional[Union[int, float]],
        actor_id: Optional[str],
    ) -> PaymentResult:
        enrolment = await Enrolment.get_for_update(self.db_session, enrolment_id)
        if not enrolment or not enrolment.plan:
            raise BadRequestException("Enrolment plan missing.")
        if enrolment.student.family_id != payment.family_id:
            raise BadRequestException("Enrolment does not belong to family.")

        plan = enrolment.plan
        custom_length = PricingService.validate_custom_block_length(plan, custom_block_length)
        plan_block_length = PricingService.resolve_block_length(plan.block_class_count)
        pricing = PricingService.calculate_block_pricing(
            plan.price_cents, plan_block_length, custom_length
        )
        if plan.billing_type == BillingType.PER_CLASS and custom_length:
            payment.amount_cents = pricing.total_cents

        self.db_session.add(payment)
        await self.db_session.flush()

        if plan.billing_type == BillingType.PER_WEEK:
            entitlement = await self._apply_weekly(enrolment, actor_id)
        else:
            entitlement = await self._block_coverage(enrolment, custom_length or plan_block_length)

        description = plan.name
        if custom_length is not None and custom_length != plan_block_length:
            description = f"{plan.name} · " + PricingService.custom_block_note(
                entitlement.credits_purchased or custom_length,
                pricing.per_class_price_cents,
                entitlement.coverage_start,
                entitlement.coverage_end,
            )

        invoice = await self.invoice_service.create_receipt_invoice(
            family_id=payment.family_id,
            enrolment=enrolment,
            amount_cents=payment.amount_cents,
            paid_at=payment.paid_at,
            description=description,
            coverage_start=entitlement.coverage_start,
            coverage_end=entitlement.coverage_end,
            credits_purchased=entitlement.credits_purchased,
        )

        if plan.billing_type == BillingType.PER_CLASS:
            await self.credit_service.record_credit_event(
                enrolment,
                EnrolmentCreditEventType.PURCHASE,
                entitlement.credits_purchased,
                to_day_key(payment.paid_at),
                note="Payment recorded",
                invoice_id=invoice.id,
            )

        payment.allocations.append(
            PaymentAllocation(invoice_id=invoice.id, amount_cents=payment.amount_cents)
        )
        await self.db_session.flush()
        return PaymentResult(payment, invoice.id)

    async def _apply_weekly(self, enrolment: Enrolment, actor_id: Optional[str]) -> _Entitlement:
        plan = enrolment.plan
        schedule = await load_enrolment_schedule(self.db_session, enrolment)
        window = compute_weekly_coverage(
            enrolment_start=to_day_key(enrolment.start_date),
            enrolment_end=to_optional_day_key(enrolment.end_date),
            current_paid_through=to_optional_day_key(enrolment.paid_through_date),
            duration_weeks=plan.duration_weeks or 0,
            plan_sessions_per_week=plan.sessions_per_week,
            templates=schedule.templates,
            holidays=schedule.holidays,
            cancellations=schedule.cancellations,
        )
        if window.coverage_end is None:
            raise BadRequestException("Unable to resolve coverage end.")

        self.enrolment_service.set_paid_through(
            enrolment, window.coverage_end, CoverageAuditReason.INVOICE_APPLIED, actor_id
        )
        return _Entitlement(window.coverage_start, window.coverage_end)

    async def _block_coverage(self, enrolment: Enrolment, credits: int) -> _Entitlement:
        """Window the new credits will cover, following on from the last paid block."""
        plan = enrolment.plan
        schedule = await load_enrolment_schedule(self.db_session, enrolment)
        latest_end = await Invoice.latest_paid_coverage_end(self.db_session, enrolment.id)
        coverage = compute_block_pay_ahead_coverage(
            current_paid_through=to_optional_day_key(latest_end),
            enrolment_start=to_day_key(enrolment.start_date),
            enrolment_end=to_optional_day_key(enrolment.end_date),
            templates=schedule.templates,
            blocks_purchased=1,
            block_class_count=PricingService.resolve_block_length(plan.block_class_count),
            holidays=schedule.holidays,
            cancellations=schedule.cancellations,
            credits_purchased=credits,
        )
        return _Entitlement(coverage.coverage_start, coverage.coverage_end, credits)

    async def undo_payment(
        self,
        payment_id: str,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Payment:
        """
        Void a payment and rebuild everything it paid for.

        Allocations are removed, each touched invoice's paid state is
        rederived from what is left, and each touched enrolment's
        entitlement is recomputed from its remaining PAID invoices. Undoing
        a VOID payment changes nothing.
        """
        now = now or datetime.now(timezone.utc)
        async with UnitOfWork(self.db_session):
            payment = await self.get_payment(payment_id)
            if payment.status == PaymentStatus.VOID:
                logger.info(f"Payment {payment_id} already void, nothing to undo")
                return payment

            invoice_ids = list(dict.fromkeys(allocation.invoice_id for allocation in payment.allocations))
            payment.allocations.clear()
            payment.status = PaymentStatus.VOID
            payment.reversed_at = payment.reversed_at or now
            payment.reversal_reason = (
                reason.strip() if reason and reason.strip() else payment.reversal_reason or DEFAULT_REVERSAL_REASON
            )
            await self.db_session.flush()

            enrolment_ids: List[str] = []
            for invoice_id in invoice_ids:
                invoice = await self.invoice_service.recompute_payment_state(invoice_id, now)
                if invoice and invoice.enrolment_id and invoice.enrolment_id not in enrolment_ids:
                    enrolment_ids.append(invoice.enrolment_id)

            for enrolment_id in enrolment_ids:
                await self.recompute_entitlements(enrolment_id, actor_id, now)

        logger.info(
            f"Undid payment {payment_id}: {len(invoice_ids)} invoice(s), "
            f"{len(enrolment_ids)} enrolment(s) recomputed"
        )
        return payment

    async def recompute_entitlements(
        self,
        enrolment_id: str,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Rebuild an enrolment's entitlement from its PAID enrolment invoices."""
        enrolment = await Enrolment.get_for_update(self.db_session, enrolment_id)
        if not enrolment or not enrolment.plan:
            return

        invoices = await Invoice.list_for_enrolment(self.db_session, enrolment_id)
        paid = [
            invoice
            for invoice in invoices
            if invoice.status == InvoiceStatus.PAID and invoice.has_enrolment_line
        ]

        if enrolment.plan.billing_type == BillingType.PER_WEEK:
            coverage_ends = [to_day_key(invoice.coverage_end) for invoice in paid if invoice.coverage_end]
            self.enrolment_service.set_paid_through(
                enrolment,
                max(coverage_ends) if coverage_ends else None,
                CoverageAuditReason.PAYMENT_UNDONE,
                actor_id,
            )
            return

        invoice_ids = [invoice.id for invoice in invoices]
        if invoice_ids:
            await self.db_session.flush()
            await self.db_session.execute(
                delete(EnrolmentCreditEvent).where(
                    EnrolmentCreditEvent.enrolment_id == enrolment_id,
                    EnrolmentCreditEvent.type == EnrolmentCreditEventType.PURCHASE,
                    EnrolmentCreditEvent.invoice_id.in_(invoice_ids),
                )
            )
        for invoice in paid:
            credits = resolve_credits_purchased(invoice, enrolment.plan)
            if credits <= 0:
                continue
            await self.credit_service.record_credit_event(
                enrolment,
                EnrolmentCreditEventType.PURCHASE,
                credits,
                to_day_key(invoice.paid_at or now or datetime.now(timezone.utc)),
                note="Invoice paid",
                invoice_id=invoice.id,
                refresh_balance=False,
            )
        await self.credit_service.sync_credit_balance(enrolment)
