"""Tests for the daily billing tasks."""

from unittest.mock import AsyncMock, patch

from app.tasks import billing_tasks


class TestBillingTasks:
    """The tasks wrap their async work and never raise into the worker."""

    def test_refresh_reports_counts(self):
        with patch.object(
            billing_tasks,
            "_refresh_enrolment_billing_async",
            new_callable=AsyncMock,
            return_value={"success": True, "refreshed": 3, "payment_due": 1},
        ) as mock_refresh:
            result = billing_tasks.refresh_enrolment_billing()

        mock_refresh.assert_awaited_once()
        assert result == {"success": True, "refreshed": 3, "payment_due": 1}

    def test_refresh_failure_is_reported(self):
        with patch.object(
            billing_tasks,
            "_refresh_enrolment_billing_async",
            new_callable=AsyncMock,
            side_effect=RuntimeError("database unavailable"),
        ):
            result = billing_tasks.refresh_enrolment_billing()

        assert result == {"success": False, "error": "database unavailable"}

    def test_mark_overdue_failure_is_reported(self):
        with patch.object(
            billing_tasks,
            "_mark_overdue_invoices_async",
            new_callable=AsyncMock,
            side_effect=RuntimeError("boom"),
        ):
            result = billing_tasks.mark_overdue_invoices()

        assert result["success"] is False
