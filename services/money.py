"""
Money and currency helpers.
All canonical amounts are THB; USD figures are either frozen on ledger rows or
derived for display from the current rate.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from models import Currency

CENT = Decimal("0.01")


def round_money(value: float, places: int = 2) -> float:
    """
    Round a monetary amount half-up using decimal arithmetic.

    Examples:
        >>> round_money(14.285714)
        14.29
        >>> round_money(0.125)
        0.13
    """
    quantum = CENT if places == 2 else Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def to_display_amount(thb_value: float, target_currency: Union[Currency, str], rate: float) -> float:
    """
    Convert a THB value to the display currency.

    Args:
        thb_value: Canonical THB amount
        target_currency: "THB" or "USD"
        rate: USD->THB rate (THB per 1 USD)

    Returns:
        The unrounded amount in the target currency
    """
    if Currency(target_currency) == Currency.USD:
        return thb_value / rate if rate else 0.0
    return thb_value


def to_thb(usd_value: float, rate: float) -> float:
    """Convert a USD amount to THB at the given rate."""
    return usd_value * rate


def effective_rate(live_rate: Optional[float], fallback_rate: float) -> float:
    """Pick the live rate when it is usable, else the configured fallback."""
    if live_rate and live_rate > 0:
        return float(live_rate)
    return fallback_rate
