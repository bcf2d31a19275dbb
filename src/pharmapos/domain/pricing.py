"""Bill arithmetic shared by the cart preview and the sale processor.

Amounts stay at full ``Decimal`` precision; :func:`money` rounds to cents and
is only applied when a value is shown or exported.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from pharmapos.domain.errors import ValidationError

TAX_RATE = Decimal("0.05")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class SaleTotals:
    subtotal: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    total_savings: Decimal
    subtotal_after_discount: Decimal
    tax: Decimal
    total: Decimal


def to_decimal(value: object, field: str = "value") -> Decimal:
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number.")
    else:
        try:
            # str() first so floats keep their short repr instead of binary noise
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValidationError(f"{field} must be a number. Received: {value!r}") from e
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number.")
    return result


def validate_discount(discount_percentage: object) -> Decimal:
    pct = to_decimal(discount_percentage, "Discount")
    if pct < 0 or pct > HUNDRED:
        raise ValidationError("Discount must be between 0 and 100.")
    return pct


def compute_totals(lines: Iterable[tuple[Decimal, int]], discount_percentage: object) -> SaleTotals:
    """
    lines: [(unit_mrp, quantity)]
    """
    pct = validate_discount(discount_percentage)
    subtotal = sum((to_decimal(mrp, "MRP") * int(qty) for mrp, qty in lines), Decimal("0"))
    discount_amount = subtotal * (pct / HUNDRED)
    subtotal_after_discount = subtotal - discount_amount
    tax = subtotal_after_discount * TAX_RATE
    return SaleTotals(
        subtotal=subtotal,
        discount_percentage=pct,
        discount_amount=discount_amount,
        total_savings=discount_amount,
        subtotal_after_discount=subtotal_after_discount,
        tax=tax,
        total=subtotal_after_discount + tax,
    )


def money(value: object) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: object) -> str:
    return f"{money(value):.2f}"
