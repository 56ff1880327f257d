"""Escrow split arithmetic.

Every order total is split into a platform fee and seller earnings at
purchase time. The split is computed once, stored on the order and never
recomputed, so later rate changes do not touch paid orders.

    platform_fee    = round(total_amount * rate) to the cent, half up
    seller_earnings = total_amount - platform_fee

Example:
    >>> calculate_escrow_split(Decimal("1000"))
    EscrowSplit(total_amount=Decimal('1000.00'), platform_fee=Decimal('150.00'),
                seller_earnings=Decimal('850.00'))
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from src.services.dto import EscrowSplit
from src.services.exceptions import ValidationError
from src.utils.config import get_config
from src.utils.constants import MONEY_QUANTUM


def to_money(value) -> Decimal:
    """Convert a price-like value to a Decimal rounded to whole cents.

    Floats go through str() so 0.1 becomes Decimal("0.10"), not its binary
    approximation.

    Raises:
        ValidationError: If the value is not numeric
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError([f"Amount '{value}' is not a valid number"])
    if not amount.is_finite():
        raise ValidationError([f"Amount '{value}' is not a valid number"])
    return amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def calculate_platform_fee(total_amount: Decimal, rate: Optional[Decimal] = None) -> Decimal:
    """Platform commission on a total, rounded half up to the cent."""
    if rate is None:
        rate = get_config().platform_fee_rate
    return (to_money(total_amount) * rate).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def calculate_escrow_split(total_amount, rate: Optional[Decimal] = None) -> EscrowSplit:
    """Split an order total into platform fee and seller earnings.

    Args:
        total_amount: Order total (package price)
        rate: Platform fee rate, defaults to the configured rate (15%)

    Returns:
        EscrowSplit whose fee and earnings sum exactly to the total

    Raises:
        ValidationError: If the total is not a positive amount or the rate
            is outside [0, 1]
    """
    if rate is None:
        rate = get_config().platform_fee_rate
    if rate < 0 or rate > 1:
        raise ValidationError([f"Platform fee rate {rate} must be between 0 and 1"])

    total = to_money(total_amount)
    if total <= 0:
        raise ValidationError([f"Order total must be positive, got {total}"])

    platform_fee = calculate_platform_fee(total, rate)
    seller_earnings = total - platform_fee

    return EscrowSplit(
        total_amount=total,
        platform_fee=platform_fee,
        seller_earnings=seller_earnings,
    )


def verify_escrow_split(total_amount, platform_fee, seller_earnings, rate: Optional[Decimal] = None) -> bool:
    """Check the stored money fields of an order against the split rules.

    Returns:
        True when fee + earnings == total and the fee matches the rate
    """
    total = to_money(total_amount)
    fee = to_money(platform_fee)
    earnings = to_money(seller_earnings)
    return fee + earnings == total and fee == calculate_platform_fee(total, rate)
