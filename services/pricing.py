"""Line and order pricing.

Every amount is a ``Decimal`` rounded half-up to cents. The discount is
applied to the unit price before extending by quantity so the same line
always prices the same regardless of how many units it holds.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

SOURCE_DISCOUNT = "DISCOUNT"
SOURCE_CODE = "CODE"


def to_decimal(value: float | int | str | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _clamp(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO


@dataclass(frozen=True)
class LinePrice:
    original_unit_price: Decimal
    unit_price: Decimal
    quantity: int
    discount_percentage: int
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    line_total: Decimal
    # Can be negative when selling below cost
    profit: Optional[Decimal] = None

    @property
    def gross_total(self) -> Decimal:
        return round_money(self.original_unit_price * self.quantity)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal


def price_line(unit_price, quantity: int, discount_percentage=0, tax_rate=0, cost=None) -> LinePrice:
    unit = _clamp(to_decimal(unit_price))
    pct = to_decimal(discount_percentage)
    rate = to_decimal(tax_rate)

    discounted_unit = _clamp(round_money(unit * (1 - pct / HUNDRED)))
    line_total = _clamp(round_money(discounted_unit * quantity))
    tax_amount = _clamp(round_money(line_total * rate / HUNDRED))
    discount_amount = _clamp(round_money(round_money(unit) * quantity) - line_total)

    profit = None
    if cost is not None:
        profit = line_total - round_money(to_decimal(cost) * quantity)

    return LinePrice(
        original_unit_price=round_money(unit),
        unit_price=discounted_unit,
        quantity=quantity,
        discount_percentage=int(pct),
        discount_amount=discount_amount,
        tax_rate=rate,
        tax_amount=tax_amount,
        line_total=line_total,
        profit=profit,
    )


def best_percentage(standing: Optional[int], code: Optional[int]) -> Tuple[int, Optional[str]]:
    """Pick the single percentage billed on a line.

    A standing discount and a redeemed code never stack: the larger one wins
    and the standing discount keeps ties.
    """
    standing = standing or 0
    code = code or 0
    if standing == 0 and code == 0:
        return 0, None
    if code > standing:
        return code, SOURCE_CODE
    return standing, SOURCE_DISCOUNT


def price_order(lines: Iterable[LinePrice], shipping=ZERO) -> OrderTotals:
    lines = list(lines)
    subtotal = sum((line.gross_total for line in lines), ZERO)
    discount = sum((line.discount_amount for line in lines), ZERO)
    tax = sum((line.tax_amount for line in lines), ZERO)
    shipping = _clamp(round_money(to_decimal(shipping)))
    total = _clamp(subtotal - discount + tax + shipping)
    return OrderTotals(
        subtotal=round_money(subtotal),
        discount=round_money(discount),
        tax=round_money(tax),
        shipping=shipping,
        total=round_money(total),
    )
