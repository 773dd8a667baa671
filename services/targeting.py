"""Discount targets and standing-discount resolution.

Discount and discount-code rows store their target as several nullable
columns. ``load_target`` folds them once into one of the ``Target`` value
types so the rest of the engine never inspects those columns.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Union

from models.enums import OrderSource


@dataclass(frozen=True)
class VariantTarget:
    variant_ids: FrozenSet[int]


@dataclass(frozen=True)
class ProductTarget:
    product_ids: FrozenSet[int]


@dataclass(frozen=True)
class CategoryTarget:
    category_id: int
    category_name: str = ""


@dataclass(frozen=True)
class StorewideTarget:
    pass


Target = Union[VariantTarget, ProductTarget, CategoryTarget, StorewideTarget]


def load_target(row) -> Target:
    """Build the target of a ``Discount`` or ``DiscountCode`` row.

    Variants are the most specific selection and win when a row carries
    more than one kind.
    """
    variant_ids = {v.id for v in getattr(row, "variants", None) or []}
    if getattr(row, "variant_id", None):
        variant_ids.add(row.variant_id)
    if variant_ids:
        return VariantTarget(frozenset(variant_ids))

    product_ids = {p.id for p in getattr(row, "products", None) or []}
    if getattr(row, "product_id", None):
        product_ids.add(row.product_id)
    if product_ids:
        return ProductTarget(frozenset(product_ids))

    if row.category_id:
        name = row.category.name if row.category is not None else ""
        return CategoryTarget(row.category_id, name)

    return StorewideTarget()


def target_kind(target: Target) -> str:
    if isinstance(target, VariantTarget):
        return "variants"
    if isinstance(target, ProductTarget):
        return "products"
    if isinstance(target, CategoryTarget):
        return "category"
    return "all"


@dataclass(frozen=True)
class CartLine:
    """One priced cart entry, built from live catalog rows at checkout."""

    product_id: int
    variant_id: Optional[int]
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal = Decimal("0")
    category_ids: FrozenSet[int] = frozenset()
    name: str = ""
    sku: Optional[str] = None
    barcode: Optional[str] = None
    options: Optional[Dict] = None
    cost: Optional[Decimal] = None

    @property
    def amount(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class StandingDiscount:
    id: int
    percentage: int
    start_date: datetime
    end_date: datetime
    target: Target
    enabled: bool = True
    available_online: bool = True
    available_in_store: bool = True
    title: Optional[str] = None

    @classmethod
    def from_model(cls, discount) -> "StandingDiscount":
        return cls(
            id=discount.id,
            percentage=discount.percentage,
            start_date=discount.start_date,
            end_date=discount.end_date,
            target=load_target(discount),
            enabled=discount.enabled,
            available_online=discount.available_online,
            available_in_store=discount.available_in_store,
            title=discount.title,
        )

    def is_live(self, channel: OrderSource, now: datetime) -> bool:
        if not self.enabled:
            return False
        if not (self.start_date <= now <= self.end_date):
            return False
        if channel == OrderSource.ONLINE:
            return self.available_online
        return self.available_in_store


def matches_variant(target: Target, line: CartLine) -> bool:
    return isinstance(target, VariantTarget) and line.variant_id is not None and line.variant_id in target.variant_ids


def matches_product(target: Target, line: CartLine) -> bool:
    return isinstance(target, ProductTarget) and line.product_id in target.product_ids


def matches_category(target: Target, line: CartLine) -> bool:
    return isinstance(target, CategoryTarget) and target.category_id in line.category_ids


def matches_storewide(target: Target, line: CartLine) -> bool:
    return isinstance(target, StorewideTarget)


# Highest priority first; the first tier with a match decides.
MATCHERS: Sequence[Callable[[Target, CartLine], bool]] = (
    matches_variant,
    matches_product,
    matches_category,
    matches_storewide,
)


def target_matches(target: Target, line: CartLine) -> bool:
    return any(matcher(target, line) for matcher in MATCHERS)


def _rank(discount: StandingDiscount):
    # highest percentage, then earliest start, then lowest id
    return (-discount.percentage, discount.start_date, discount.id)


def resolve(
    line: CartLine,
    candidates: Iterable[StandingDiscount],
    channel: OrderSource,
    now: datetime,
) -> Optional[StandingDiscount]:
    """Return the single standing discount that applies to ``line``, if any."""
    live = [d for d in candidates if d.is_live(channel, now)]
    for matcher in MATCHERS:
        tier = [d for d in live if matcher(d.target, line)]
        if tier:
            return min(tier, key=_rank)
    return None


@dataclass
class ResolvedLine:
    line: CartLine
    discount: Optional[StandingDiscount] = None
    code_applies: bool = False

    @property
    def standing_percentage(self) -> int:
        return self.discount.percentage if self.discount else 0


def resolve_lines(
    lines: Iterable[CartLine],
    candidates: Iterable[StandingDiscount],
    channel: OrderSource,
    now: datetime,
) -> List[ResolvedLine]:
    candidates = list(candidates)
    return [ResolvedLine(line=line, discount=resolve(line, candidates, channel, now)) for line in lines]
