"""Invoice service: receipts, payment state and overdue tracking."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enrolment import Enrolment
from app.models.invoice import (
    Invoice,
    InvoiceLineItem,
    InvoiceLineItemKind,
    InvoiceStatus,
)
from app.models.payment import Payment, PaymentAllocation
from app.utils.day_keys import DayKey, to_optional_date
from core.config import config
from core.db import UnitOfWork
from core.exceptions import ValidationException
from core.logging import get_logger

logger = get_logger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; they were stored as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class InvoiceService:
    """Service for invoice state."""

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session

    @staticmethod
    def next_invoice_status(
        status: InvoiceStatus,
        amount_cents: int,
        paid_cents: int,
        due_at: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> InvoiceStatus:
        """
        Status an invoice should have for a paid amount.

        VOID is terminal. Otherwise fully paid wins, then part-paid, then a
        DRAFT stays a draft, then anything past due is OVERDUE, else SENT.
        """
        if status == InvoiceStatus.VOID:
            return InvoiceStatus.VOID
        if paid_cents >= amount_cents:
            return InvoiceStatus.PAID
        if paid_cents > 0:
            return InvoiceStatus.PARTIALLY_PAID
        if status == InvoiceStatus.DRAFT:
            return InvoiceStatus.DRAFT
        now = now or datetime.now(timezone.utc)
        due_at = _as_utc(due_at)
        if due_at is not None and due_at < now:
            return InvoiceStatus.OVERDUE
        return InvoiceStatus.SENT

    async def create_receipt_invoice(
        self,
        family_id: str,
        enrolment: Enrolment,
        amount_cents: int,
        paid_at: datetime,
        description: str,
        coverage_start: Optional[DayKey] = None,
        coverage_end: Optional[DayKey] = None,
        credits_purchased: Optional[int] = None,
    ) -> Invoice:
        """A PAID invoice recording what a counter payment bought."""
        invoice = Invoice(
            family_id=family_id,
            enrolment_id=enrolment.id,
            status=InvoiceStatus.PAID,
            amount_cents=amount_cents,
            amount_paid_cents=amount_cents,
            issued_at=paid_at,
            due_at=paid_at,
            paid_at=paid_at,
            coverage_start=to_optional_date(coverage_start),
            coverage_end=to_optional_date(coverage_end),
            credits_purchased=credits_purchased,
            line_items=[
                InvoiceLineItem(
                    kind=InvoiceLineItemKind.ENROLMENT,
                    description=description,
                    quantity=1,
                    unit_price_cents=amount_cents,
                    amount_cents=amount_cents,
                    enrolment_id=enrolment.id,
                )
            ],
        )
        self.db_session.add(invoice)
        await self.db_session.flush()
        return invoice

    async def issue_invoice(
        self,
        family_id: str,
        amount_cents: int,
        description: str,
        enrolment_id: Optional[str] = None,
        kind: InvoiceLineItemKind = InvoiceLineItemKind.ENROLMENT,
        now: Optional[datetime] = None,
    ) -> Invoice:
        """Issue a SENT invoice due ``INVOICE_DUE_DAYS`` from now."""
        if amount_cents <= 0:
            raise ValidationException("Invoice amount must be positive.")

        now = now or datetime.now(timezone.utc)
        async with UnitOfWork(self.db_session):
            invoice = Invoice(
                family_id=family_id,
                enrolment_id=enrolment_id,
                status=InvoiceStatus.SENT,
                amount_cents=amount_cents,
                amount_paid_cents=0,
                issued_at=now,
                due_at=now + timedelta(days=config.INVOICE_DUE_DAYS),
                line_items=[
                    InvoiceLineItem(
                        kind=kind,
                        description=description,
                        quantity=1,
                        unit_price_cents=amount_cents,
                        amount_cents=amount_cents,
                        enrolment_id=enrolment_id,
                    )
                ],
            )
            self.db_session.add(invoice)
            await self.db_session.flush()

        logger.info(f"Issued invoice {invoice.id} of {amount_cents}c to family {family_id}")
        return invoice

    async def recompute_payment_state(
        self, invoice_id: str, now: Optional[datetime] = None
    ) -> Optional[Invoice]:
        """Rederive paid amount, status and paid date from the remaining allocations."""
        invoice = await Invoice.get_by_id(self.db_session, invoice_id)
        if not invoice:
            return None

        await self.db_session.flush()
        paid_result = await self.db_session.execute(
            select(func.coalesce(func.sum(PaymentAllocation.amount_cents), 0)).where(
                PaymentAllocation.invoice_id == invoice_id
            )
        )
        paid_cents = max(int(paid_result.scalar_one()), 0)
        latest_result = await self.db_session.execute(
            select(func.max(Payment.paid_at))
            .join(PaymentAllocation, PaymentAllocation.payment_id == Payment.id)
            .where(PaymentAllocation.invoice_id == invoice_id)
        )
        latest_paid_at = latest_result.scalar_one_or_none()

        status = self.next_invoice_status(
            invoice.status, invoice.amount_cents, paid_cents, invoice.due_at, now
        )
        if status == InvoiceStatus.PAID:
            invoice.paid_at = invoice.paid_at or latest_paid_at or now or datetime.now(timezone.utc)
        elif status != InvoiceStatus.VOID:
            invoice.paid_at = None
        invoice.amount_paid_cents = paid_cents
        invoice.status = status
        return invoice

    async def mark_overdue_invoices(self, now: Optional[datetime] = None) -> List[str]:
        """Move SENT invoices past their due date to OVERDUE."""
        now = now or datetime.now(timezone.utc)
        async with UnitOfWork(self.db_session):
            result = await self.db_session.execute(
                select(Invoice).where(
                    Invoice.status == InvoiceStatus.SENT,
                    Invoice.due_at.is_not(None),
                )
            )
            updated: List[str] = []
            for invoice in result.scalars().all():
                status = self.next_invoice_status(
                    invoice.status,
                    invoice.amount_cents,
                    invoice.amount_paid_cents,
                    invoice.due_at,
                    now,
                )
                if status != invoice.status:
                    invoice.status = status
                    updated.append(invoice.id)

        if updated:
            logger.info(f"Marked {len(updated)} invoice(s) overdue")
        return updated
