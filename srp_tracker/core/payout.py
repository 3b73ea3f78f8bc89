"""
Payout calculation.

Turns a claimed loss into a suggested reimbursement using the tier table's
caps and the policy multipliers.
"""

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Optional, Union

from srp_tracker.config.loader import PayoutPolicy
from srp_tracker.storage.models import OperationType

from .errors import ValidationError
from .tiers import TierTable

FLEET_MULTIPLIER = Decimal("1.0")


@dataclass(frozen=True)
class PayoutBreakdown:
    """How a final amount was reached, for display and review notes."""
    base_value: int
    operation_multiplier: Decimal
    is_special_role: bool
    special_role_multiplier: Decimal
    cap: Optional[int]
    tier_applied: Optional[str]
    capped: bool


@dataclass(frozen=True)
class PayoutEstimate:
    final_amount: int
    breakdown: PayoutBreakdown


def parse_operation_type(value: Union[str, OperationType]) -> OperationType:
    """Coerce a raw value to OperationType, rejecting anything else."""
    try:
        return OperationType(value)
    except ValueError:
        valid = [op.value for op in OperationType]
        raise ValidationError(f"operation_type must be one of: {valid}, got {value!r}")


def _to_decimal(value: Union[int, float, Decimal]) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationError(f"claimed_value must be a number, got {value!r}")
    try:
        result = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except InvalidOperation:
        raise ValidationError(f"claimed_value must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError("claimed_value must be finite")
    return result


def calculate_payout(
    category: str,
    claimed_value: Union[int, float, Decimal],
    operation_type: Union[str, OperationType],
    is_special_role: bool,
    tier_table: TierTable,
    policy: Optional[PayoutPolicy] = None
) -> PayoutEstimate:
    """Compute the suggested payout for a loss.

    Steps:
    1. Cap from the category's tier. A category with no tier, or an unloaded
       table, has no cap at all.
    2. Multiply the claimed value by 1.0 for fleet losses or by the solo
       multiplier for solo losses.
    3. Multiply again by the special role multiplier when it applies.
    4. Clamp to the cap and round DOWN to a whole unit.

    Args:
        category: Asset category to look up in the tier table
        claimed_value: Claimed loss value, >= 0
        operation_type: "solo" or "fleet"
        is_special_role: Whether the pilot flew a designated fleet role
        tier_table: Table providing caps
        policy: Multipliers; defaults to the tier table's policy

    Returns:
        PayoutEstimate with the final amount and its breakdown

    Raises:
        ValidationError: If claimed_value is negative or not a number, or
            operation_type is not solo/fleet
    """
    value = _to_decimal(claimed_value)
    if value < 0:
        raise ValidationError("claimed_value cannot be negative")
    operation = parse_operation_type(operation_type)
    policy = policy or tier_table.policy()

    cap = tier_table.max_payout(category)
    tier = tier_table.tier_name(category)

    operation_multiplier = FLEET_MULTIPLIER if operation == OperationType.FLEET else policy.solo_multiplier
    amount = value * operation_multiplier
    if is_special_role:
        amount = amount * policy.special_role_multiplier

    capped = cap is not None and amount > cap
    if capped:
        amount = Decimal(cap)

    final_amount = int(amount.to_integral_value(rounding=ROUND_FLOOR))

    return PayoutEstimate(
        final_amount=final_amount,
        breakdown=PayoutBreakdown(
            base_value=int(value.to_integral_value(rounding=ROUND_FLOOR)),
            operation_multiplier=operation_multiplier,
            is_special_role=bool(is_special_role),
            special_role_multiplier=policy.special_role_multiplier if is_special_role else Decimal("1"),
            cap=cap,
            tier_applied=tier,
            capped=capped
        )
    )
