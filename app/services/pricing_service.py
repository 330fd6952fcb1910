"""Pricing for enrolment plans: block lengths and custom block totals."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from app.models.enrolment import BillingType, EnrolmentPlan
from core.exceptions import InvalidBlockLength


@dataclass
class BlockPricing:
    """Price of one purchase on a block plan."""

    block_length: int
    per_class_price_cents: int
    total_cents: int


class PricingService:
    """Pure pricing helpers for enrolment plans."""

    @staticmethod
    def resolve_block_length(block_class_count: Optional[int]) -> int:
        """Classes per block; a missing or non-positive count means one."""
        if not block_class_count or block_class_count <= 0:
            return 1
        return block_class_count

    @staticmethod
    def calculate_block_pricing(
        price_cents: int,
        block_length: int,
        custom_block_length: Optional[int] = None,
    ) -> BlockPricing:
        """
        Price a block purchase.

        The per-class price is the plan price spread over its block length,
        rounded half-up to the cent. A custom length is charged at that
        per-class price; without one the plan price is charged as-is.

        Example:
            price 20000c for 10 classes, custom length 12 -> 2000c x 12 = 24000c
        """
        block_length = max(block_length, 1)
        per_class = (Decimal(price_cents) / Decimal(block_length)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        if custom_block_length is None:
            return BlockPricing(block_length, int(per_class), price_cents)
        return BlockPricing(
            block_length=custom_block_length,
            per_class_price_cents=int(per_class),
            total_cents=int(per_class * custom_block_length),
        )

    @staticmethod
    def validate_custom_block_length(
        plan: EnrolmentPlan, custom_block_length: Optional[Union[int, float]]
    ) -> Optional[int]:
        """
        Check a custom block length against the plan.

        Raises:
            InvalidBlockLength: Not a block plan, not a whole number, or
                shorter than the plan's block
        """
        if custom_block_length is None:
            return None
        if plan.billing_type != BillingType.PER_CLASS:
            raise InvalidBlockLength("Custom block length is only allowed for block-based plans.")
        if isinstance(custom_block_length, bool) or not float(custom_block_length).is_integer():
            raise InvalidBlockLength("Custom block length must be an integer.")
        custom_block_length = int(custom_block_length)
        plan_block_length = PricingService.resolve_block_length(plan.block_class_count)
        if custom_block_length < plan_block_length:
            raise InvalidBlockLength(
                "Custom block length must be at least the plan block length.",
                data={
                    "custom_block_length": custom_block_length,
                    "plan_block_length": plan_block_length,
                },
            )
        return custom_block_length

    @staticmethod
    def custom_block_note(
        total_classes: int,
        per_class_price_cents: int,
        coverage_start: Optional[str],
        coverage_end: Optional[str],
    ) -> str:
        """Line item text for a non-standard block, e.g.
        ``12 classes @ $20.00 (2026-01-05 to 2026-03-23)``."""
        note = f"{total_classes} classes @ ${Decimal(per_class_price_cents) / 100:.2f}"
        if coverage_start and coverage_end:
            note += f" ({coverage_start} to {coverage_end})"
        return note
