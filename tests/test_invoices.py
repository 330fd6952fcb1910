"""Tests for invoice status transitions."""

from datetime import datetime, timedelta, timezone

import pytest

from app.models.invoice import Invoice, InvoiceStatus
from app.services.invoice_service import InvoiceService

NOW = datetime(2026, 2, 1, 0, 0, tzinfo=timezone.utc)
PAST = NOW - timedelta(days=1)
FUTURE = NOW + timedelta(days=1)


class TestNextInvoiceStatus:
    """Tests for InvoiceService.next_invoice_status."""

    @pytest.mark.parametrize(
        "status, paid, due_at, expected",
        [
            (InvoiceStatus.VOID, 1000, PAST, InvoiceStatus.VOID),
            (InvoiceStatus.SENT, 1000, PAST, InvoiceStatus.PAID),
            (InvoiceStatus.SENT, 400, PAST, InvoiceStatus.PARTIALLY_PAID),
            (InvoiceStatus.DRAFT, 0, PAST, InvoiceStatus.DRAFT),
            (InvoiceStatus.SENT, 0, PAST, InvoiceStatus.OVERDUE),
            (InvoiceStatus.PAID, 0, FUTURE, InvoiceStatus.SENT),
            (InvoiceStatus.SENT, 0, None, InvoiceStatus.SENT),
        ],
    )
    def test_transitions(self, status, paid, due_at, expected):
        assert InvoiceService.next_invoice_status(status, 1000, paid, due_at, NOW) == expected

    def test_naive_due_date_is_utc(self):
        naive_past = PAST.replace(tzinfo=None)
        assert InvoiceService.next_invoice_status(
            InvoiceStatus.SENT, 1000, 0, naive_past, NOW
        ) == InvoiceStatus.OVERDUE


class TestMarkOverdue:
    """Tests for the overdue sweep."""

    async def test_only_past_due_sent_invoices_move(self, db_session, family):
        overdue = Invoice(family_id=family.id, status=InvoiceStatus.SENT, amount_cents=1000, due_at=PAST)
        current = Invoice(family_id=family.id, status=InvoiceStatus.SENT, amount_cents=1000, due_at=FUTURE)
        draft = Invoice(family_id=family.id, status=InvoiceStatus.DRAFT, amount_cents=1000, due_at=PAST)
        db_session.add_all([overdue, current, draft])
        await db_session.commit()

        updated = await InvoiceService(db_session).mark_overdue_invoices(now=NOW)

        assert updated == [overdue.id]
        assert overdue.status == InvoiceStatus.OVERDUE
        assert current.status == InvoiceStatus.SENT
        assert draft.status == InvoiceStatus.DRAFT

    async def test_issued_invoice_goes_overdue_after_due_days(self, db_session, family):
        service = InvoiceService(db_session)
        invoice = await service.issue_invoice(family.id, 8000, "Term fees", now=NOW)

        assert invoice.status == InvoiceStatus.SENT
        assert invoice.due_at == NOW + timedelta(days=14)
        assert invoice.line_items[0].amount_cents == 8000

        assert await service.mark_overdue_invoices(now=NOW + timedelta(days=7)) == []
        assert await service.mark_overdue_invoices(now=NOW + timedelta(days=15)) == [invoice.id]
