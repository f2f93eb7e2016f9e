"""Utility helpers for the models package."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")
TICKET_PREFIX = "LKY"


def to_money(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """Return ``value`` as a ``Decimal`` rounded to cents.

    Floats are converted through ``str`` so that ``0.1`` stays ``0.10``
    instead of picking up binary noise. ``None`` is treated as zero.
    """

    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_ticket_code(round_number: int, sequence: int) -> str:
    """Return the public identifier of a ticket, e.g. ``LKY-0007-000042``."""

    if sequence < 1:
        raise ValueError("sequence must be a positive integer")
    return f"{TICKET_PREFIX}-{round_number:04d}-{sequence:06d}"
