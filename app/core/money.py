"""Money rounding helpers shared by models and the payment services."""

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def round_money(amount) -> float:
    """Round to two decimals, half-up (5.005 -> 5.01, unlike float round)."""
    return float(Decimal(str(amount or 0)).quantize(CENT, rounding=ROUND_HALF_UP))


def to_minor_units(amount) -> int:
    """Convert a major-unit amount to integer cents for Stripe."""
    return int((Decimal(str(amount or 0)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def platform_split(total, fee_rate) -> tuple[float, float]:
    """Return ``(platform_fee, owner_payout)`` for a gross amount."""
    fee = round_money(Decimal(str(total or 0)) * Decimal(str(fee_rate)))
    payout = max(round_money(Decimal(str(total or 0)) - Decimal(str(fee))), 0.0)
    return fee, payout
