"""Shared colours and number formatting for rendered and exported reports."""

import math
from typing import Dict, Tuple

from ..models.assessment import RepairCost, Severity

RGB = Tuple[int, int, int]

BRAND_BLUE: RGB = (37, 99, 235)
SUMMARY_FILL: RGB = (243, 244, 246)
TILE_FILL: RGB = (239, 246, 255)
COST_FILL: RGB = (220, 252, 231)
COST_TEXT: RGB = (22, 101, 52)

# Severity stat tile backgrounds
_TILE_FILLS: Dict[Severity, RGB] = {
    Severity.SEVERE: (254, 202, 202),
    Severity.MODERATE: (254, 243, 199),
}
_TILE_DEFAULT: RGB = (209, 250, 229)

# Damage detail box backgrounds
_DAMAGE_FILLS: Dict[Severity, RGB] = {
    Severity.SEVERE: (254, 226, 226),
    Severity.MODERATE: (254, 249, 195),
    Severity.MINOR: (220, 252, 231),
}

# Badge colours for the interactive views
SEVERITY_BADGES: Dict[Severity, Dict[str, str]] = {
    Severity.NONE: {"background": "#d1fae5", "color": "#065f46", "border": "#10b981"},
    Severity.MINOR: {"background": "#fef9c3", "color": "#854d0e", "border": "#eab308"},
    Severity.MODERATE: {"background": "#ffedd5", "color": "#9a3412", "border": "#f97316"},
    Severity.SEVERE: {"background": "#fee2e2", "color": "#991b1b", "border": "#ef4444"},
}

CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}


def severity_tile_fill(severity: Severity) -> RGB:
    return _TILE_FILLS.get(severity, _TILE_DEFAULT)


def damage_box_fill(severity: Severity) -> RGB:
    return _DAMAGE_FILLS.get(severity, _DAMAGE_FILLS[Severity.MINOR])


def group_digits(amount: float, currency: str = "INR") -> str:
    """
    Format a whole amount with thousands separators.

    Rupee amounts use Indian grouping (``1,00,000``), other currencies
    Western grouping (``100,000``).
    """
    value = int(math.floor(abs(amount) + 0.5))
    sign = "-" if amount < 0 else ""
    if currency != "INR":
        return f"{sign}{value:,}"

    digits = str(value)
    if len(digits) <= 3:
        return sign + digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return sign + ",".join(groups + [tail])


def format_amount(amount: float, currency: str = "INR", symbol: bool = True) -> str:
    """
    Format an amount for display.

    Args:
        amount: Amount in major units
        currency: ISO currency code
        symbol: Use the currency symbol when known; otherwise prefix the code
            (PDF core fonts cannot draw the rupee sign)

    Returns:
        e.g. "₹25,000" or "INR 25,000"
    """
    currency = currency or "INR"
    grouped = group_digits(amount, currency)
    if symbol and currency in CURRENCY_SYMBOLS:
        return f"{CURRENCY_SYMBOLS[currency]}{grouped}"
    return f"{currency} {grouped}"


def format_cost_range(cost: RepairCost, symbol: bool = True) -> str:
    return (
        f"{format_amount(cost.min, cost.currency, symbol)} - "
        f"{format_amount(cost.max, cost.currency, symbol)}"
    )
