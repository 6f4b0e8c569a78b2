"""
Markup arithmetic shared by winner selection and amendments
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Union

from freightbridge.core.config import settings
from freightbridge.core.errors import ValidationError

CENTS = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    """Quantize to cents, rounding half up"""
    try:
        return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Invalid amount '{value}'")


def resolve_markup(rate: Optional[Number] = None) -> Decimal:
    """
    Return the markup rate to apply: the configured one when none is given,
    otherwise the given one after checking it against the configured bounds.
    """
    if rate is None:
        return settings.MARKUP_RATE
    try:
        rate = Decimal(str(rate))
    except InvalidOperation:
        raise ValidationError(f"Invalid markup rate '{rate}'")
    if rate < settings.MARKUP_MIN or rate > settings.MARKUP_MAX:
        raise ValidationError(
            f"Markup rate {rate} outside allowed range {settings.MARKUP_MIN}-{settings.MARKUP_MAX}"
        )
    return rate


def markup_amount(cost: Number, rate: Number) -> Decimal:
    return to_money(Decimal(str(cost)) * Decimal(str(rate)))


def apply_markup(cost: Number, rate: Number) -> Decimal:
    """Client-facing price: cost * (1 + rate)"""
    return to_money(Decimal(str(cost)) * (Decimal("1") + Decimal(str(rate))))
