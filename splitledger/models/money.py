"""
Money helpers.

DESIGN DECISION: Amounts live as Decimal on the models and are converted to
integer minor units (cents) before any summing. Aggregating integers means
balances never drift, however many expenses are folded together.
"""

from decimal import ROUND_HALF_UP, Decimal


def to_minor_units(amount: Decimal, digits: int = 2) -> int:
    """Convert a Decimal amount to an integer count of minor units."""
    scaled = Decimal(amount).scaleb(digits)
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(units: int, digits: int = 2) -> Decimal:
    """Convert integer minor units back to a Decimal with `digits` places."""
    return Decimal(units).scaleb(-digits).quantize(Decimal(1).scaleb(-digits))


def split_gap(amount: Decimal, shares: list[Decimal], digits: int = 2) -> int:
    """
    Difference between an amount and the sum of its shares, in minor units.

    Positive when the shares fall short of the amount.
    """
    total = sum(to_minor_units(share, digits) for share in shares)
    return to_minor_units(amount, digits) - total
