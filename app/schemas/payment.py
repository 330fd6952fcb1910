"""Payment-related schemas."""

from datetime import date, datetime
from typing import Optional

from pydantic import Field

from app.models.invoice import InvoiceLineItemKind, InvoiceStatus
from app.models.payment import PaymentStatus
from app.schemas.base import BaseSchema


class PaymentCreate(BaseSchema):
    """Record a counter payment, optionally applied to one enrolment."""

    family_id: str
    amount_cents: int = Field(..., gt=0, description="Amount in cents")
    enrolment_id: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, max_length=255)
    custom_block_length: Optional[float] = Field(
        None, description="Classes bought on a block plan, at least the plan's block length"
    )
    paid_at: Optional[datetime] = None
    method: Optional[str] = Field(None, max_length=50)
    note: Optional[str] = None


class PaymentUndo(BaseSchema):
    """Undo (void) a payment."""

    reason: Optional[str] = Field(None, max_length=500)


class PaymentAllocationResponse(BaseSchema):
    id: str
    invoice_id: str
    amount_cents: int


class PaymentResponse(BaseSchema):
    """Payment transaction response."""

    id: str
    family_id: str
    amount_cents: int
    status: PaymentStatus
    paid_at: datetime
    method: Optional[str] = None
    note: Optional[str] = None
    idempotency_key: Optional[str] = None
    reversed_at: Optional[datetime] = None
    reversal_reason: Optional[str] = None
    allocations: list[PaymentAllocationResponse] = []


class PaymentRecordResponse(BaseSchema):
    """Result of recording a payment."""

    payment: PaymentResponse
    receipt_invoice_id: Optional[str] = None
    replayed: bool = False


class InvoiceLineItemResponse(BaseSchema):
    id: str
    kind: InvoiceLineItemKind
    description: str
    quantity: int
    unit_price_cents: int
    amount_cents: int
    enrolment_id: Optional[str] = None


class InvoiceResponse(BaseSchema):
    """Invoice with its paid state and the coverage it bought."""

    id: str
    family_id: str
    enrolment_id: Optional[str] = None
    status: InvoiceStatus
    amount_cents: int
    amount_paid_cents: int
    issued_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    coverage_start: Optional[date] = None
    coverage_end: Optional[date] = None
    credits_purchased: Optional[int] = None
    line_items: list[InvoiceLineItemResponse] = []
