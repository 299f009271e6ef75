"""Minor-unit conversion shared by the service, tools and HTTP layer."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

Amount = Union[Decimal, float, int, str]


def to_minor_units(amount: Amount) -> int:
    """Convert a major-unit amount (e.g. 25.50) to integer pence.

    Floats go through ``str`` so 0.1 + 0.2 style noise never leaks in.
    Raises ValueError for negative or non-numeric input.
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    minor = int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if minor < 0:
        raise ValueError("Amount must not be negative")
    return minor


def from_minor_units(amount_minor: int) -> Decimal:
    return (Decimal(amount_minor) / 100).quantize(Decimal("0.01"))
