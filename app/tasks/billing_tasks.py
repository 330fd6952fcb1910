"""Celery tasks for daily billing upkeep."""

import asyncio
import logging
from typing import Any, Dict

from app.services.credit_service import CreditService
from app.services.invoice_service import InvoiceService
from app.tasks.celery_app import celery_app
from core.db.session import async_session_factory

logger = logging.getLogger(__name__)


@celery_app.task(name="refresh_enrolment_billing")
def refresh_enrolment_billing() -> Dict[str, Any]:
    """Periodic task recomputing the billing snapshot of every open enrolment.

    Block enrolments have past classes consumed from their credit ledger, so
    the cached balance stays equal to the ledger sum.
    """
    logger.info("Starting enrolment billing refresh")

    try:
        return asyncio.run(_refresh_enrolment_billing_async())
    except Exception as e:
        logger.error(f"Error in refresh_enrolment_billing: {str(e)}")
        return {"success": False, "error": str(e)}


async def _refresh_enrolment_billing_async() -> Dict[str, Any]:
    async with async_session_factory() as db:
        snapshots = await CreditService(db).refresh_open_enrolments()

    due = [snapshot.enrolment_id for snapshot in snapshots if snapshot.next_payment_due_date]
    logger.info(f"Billing refreshed for {len(snapshots)} enrolments, {len(due)} with a payment due")
    return {"success": True, "refreshed": len(snapshots), "payment_due": len(due)}


@celery_app.task(name="mark_overdue_invoices")
def mark_overdue_invoices() -> Dict[str, Any]:
    """Periodic task moving SENT invoices past their due date to OVERDUE."""
    logger.info("Starting overdue invoice check")

    try:
        return asyncio.run(_mark_overdue_invoices_async())
    except Exception as e:
        logger.error(f"Error in mark_overdue_invoices: {str(e)}")
        return {"success": False, "error": str(e)}


async def _mark_overdue_invoices_async() -> Dict[str, Any]:
    async with async_session_factory() as db:
        updated = await InvoiceService(db).mark_overdue_invoices()
    return {"success": True, "marked_overdue": len(updated)}
