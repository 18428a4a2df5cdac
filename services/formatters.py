"""
Formatting helpers shared by the services and the console.
"""

import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

CENTS = Decimal("0.01")

_NET_TERMS = re.compile(r"net\s*(\d+)", re.IGNORECASE)


def money(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """Coerce a value to a Decimal rounded half-up to cents."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def format_phone_number(value: Optional[str]) -> str:
    """
    Format a US phone number as the user types it.

    "5" -> "(5", "55512" -> "(555) 12", "5551234567" -> "(555) 123-4567".
    Digits beyond the tenth are dropped.
    """
    digits = re.sub(r"\D", "", value or "")[:10]
    if not digits:
        return ""
    if len(digits) <= 3:
        return f"({digits}"
    if len(digits) <= 6:
        return f"({digits[:3]}) {digits[3:]}"
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def format_tax_id(value: Optional[str]) -> str:
    """Format an EIN as XX-XXXXXXX."""
    digits = re.sub(r"\D", "", value or "")[:9]
    if len(digits) <= 2:
        return digits
    return f"{digits[:2]}-{digits[2:]}"


def format_currency(amount: Union[Decimal, int, float, None]) -> str:
    value = money(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def parse_payment_terms(terms: Optional[str]) -> int:
    """
    Number of days until an invoice with these terms is due.

    "Net 45" -> 45. Missing terms fall back to Net 30; "Due on receipt"
    and anything unrecognised are due immediately.
    """
    if terms is None:
        return 30
    match = _NET_TERMS.search(terms)
    if match:
        return int(match.group(1))
    return 0
