from app.models.away import AwayPeriod, AwayPeriodImpact, AwayScope
from app.models.class_template import ClassCancellation, ClassTemplate, Holiday, Level
from app.models.credit import EnrolmentCreditEvent, EnrolmentCreditEventType
from app.models.enrolment import (
    BillingType,
    CoverageAuditReason,
    Enrolment,
    EnrolmentClassAssignment,
    EnrolmentCoverageAudit,
    EnrolmentPlan,
    EnrolmentStatus,
)
from app.models.family import Family, Student
from app.models.invoice import (
    Invoice,
    InvoiceLineItem,
    InvoiceLineItemKind,
    InvoiceStatus,
)
from app.models.payment import Payment, PaymentAllocation, PaymentStatus
from app.models.user import Role, User

__all__ = [
    # User
    "User",
    "Role",
    # Family
    "Family",
    "Student",
    # Schedule
    "Level",
    "ClassTemplate",
    "Holiday",
    "ClassCancellation",
    # Enrolment
    "Enrolment",
    "EnrolmentPlan",
    "EnrolmentClassAssignment",
    "EnrolmentCoverageAudit",
    "EnrolmentStatus",
    "BillingType",
    "CoverageAuditReason",
    # Credits
    "EnrolmentCreditEvent",
    "EnrolmentCreditEventType",
    # Away
    "AwayPeriod",
    "AwayPeriodImpact",
    "AwayScope",
    # Billing
    "Invoice",
    "InvoiceLineItem",
    "InvoiceLineItemKind",
    "InvoiceStatus",
    "Payment",
    "PaymentAllocation",
    "PaymentStatus",
]
