"""Checkout / POS flow.

cart items -> catalog lines -> best standing discount per line -> optional
code -> per-line pricing -> order creation.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

from core import clock
from core.config import settings
from core.errors import ErrorKind, Result
from models.discount import Discount
from models.enums import OrderSource
from models.product import Product
from services import discount_codes
from services.discount_codes import CodeValidation
from services.orders import Notifier, OrderLifecycleManager, PricedLine
from services.pricing import SOURCE_CODE, OrderTotals, best_percentage, price_line, price_order, to_decimal
from services.targeting import CartLine, StandingDiscount, resolve_lines

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartItem:
    product_id: int
    quantity: int
    variant_id: Optional[int] = None


@dataclass
class Quote:
    order_source: OrderSource
    lines: List[PricedLine]
    totals: OrderTotals
    code: Optional[CodeValidation] = None

    @property
    def code_used(self) -> bool:
        return any(line.discount_source == SOURCE_CODE for line in self.lines)


def build_cart_lines(db: Session, shop_id: int, items: Iterable[CartItem]) -> Result:
    items = list(items)
    if not items:
        return Result.failure(ErrorKind.VALIDATION, "Order must contain at least one item")
    if any(item.quantity < 1 for item in items):
        return Result.failure(ErrorKind.VALIDATION, "Quantity must be at least 1")

    product_ids = {item.product_id for item in items}
    products = {
        p.id: p
        for p in db.query(Product)
        .options(selectinload(Product.variants), selectinload(Product.categories))
        .filter(Product.shop_id == shop_id, Product.id.in_(product_ids), Product.deleted_at.is_(None))
        .all()
    }

    lines = []
    for item in items:
        product = products.get(item.product_id)
        if not product:
            return Result.failure(ErrorKind.NOT_FOUND, f"Product {item.product_id} not found")
        category_ids = frozenset(c.id for c in product.categories)

        if item.variant_id is not None:
            variant = next((v for v in product.variants if v.id == item.variant_id), None)
            if not variant:
                return Result.failure(
                    ErrorKind.NOT_FOUND, f"Variant {item.variant_id} not found for product {product.name}"
                )
            tax_rate = variant.tva if variant.tva is not None else product.tva
            cost = variant.cost if variant.cost is not None else product.cost
            lines.append(CartLine(
                product_id=product.id,
                variant_id=variant.id,
                quantity=item.quantity,
                unit_price=to_decimal(variant.price),
                tax_rate=to_decimal(tax_rate or 0),
                category_ids=category_ids,
                name=f"{product.name} - {variant.name}",
                sku=variant.sku or product.sku,
                barcode=variant.barcode or product.barcode,
                options=variant.options,
                cost=to_decimal(cost) if cost is not None else None,
            ))
        elif product.variants:
            # stock lives on the variants once a product has any
            return Result.failure(ErrorKind.VALIDATION, f"A variant must be selected for {product.name}")
        else:
            lines.append(CartLine(
                product_id=product.id,
                variant_id=None,
                quantity=item.quantity,
                unit_price=to_decimal(product.price),
                tax_rate=to_decimal(product.tva or 0),
                category_ids=category_ids,
                name=product.name,
                sku=product.sku,
                barcode=product.barcode,
                cost=to_decimal(product.cost) if product.cost is not None else None,
            ))
    return Result.success(lines)


def load_standing_discounts(db: Session, shop_id: int) -> List[StandingDiscount]:
    rows = (
        db.query(Discount)
        .options(
            selectinload(Discount.products),
            selectinload(Discount.variants),
            selectinload(Discount.category),
        )
        .filter(Discount.shop_id == shop_id, Discount.enabled.is_(True))
        .all()
    )
    return [StandingDiscount.from_model(row) for row in rows]


def quote(
    db: Session,
    shop_id: int,
    order_source: OrderSource | str,
    customer_id: Optional[int],
    items: Iterable[CartItem],
    code: Optional[str] = None,
    shipping: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> Result:
    now = now or clock.now()
    source = OrderSource(order_source)

    built = build_cart_lines(db, shop_id, items)
    if not built.ok:
        return built
    lines: List[CartLine] = built.value

    resolved = resolve_lines(lines, load_standing_discounts(db, shop_id), source, now)

    validation = None
    if code:
        subtotal = sum((line.amount for line in lines), Decimal("0"))
        validation = discount_codes.validate(db, code, shop_id, source, customer_id, lines, subtotal, now=now)
        if not validation.valid:
            return Result.from_error(validation.error)

    priced = []
    for entry in resolved:
        code_pct = validation.discount_code.percentage if validation and validation.applies_to(entry.line) else 0
        pct, source_tag = best_percentage(entry.standing_percentage, code_pct)
        price = price_line(entry.line.unit_price, entry.line.quantity, pct, entry.line.tax_rate, entry.line.cost)
        priced.append(PricedLine(line=entry.line, price=price, discount_source=source_tag))

    totals = price_order(
        [p.price for p in priced],
        shipping if shipping is not None else settings.DEFAULT_SHIPPING,
    )
    logger.debug("quoted %s lines for shop %s, total %s", len(priced), shop_id, totals.total)
    return Result.success(Quote(order_source=source, lines=priced, totals=totals, code=validation))


def place_order(
    db: Session,
    shop_id: int,
    order_source: OrderSource | str,
    customer_id: Optional[int],
    items: Iterable[CartItem],
    code: Optional[str] = None,
    processed_by: Optional[int] = None,
    notes: Optional[str] = None,
    shipping: Optional[Decimal] = None,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> Result:
    quoted = quote(db, shop_id, order_source, customer_id, items, code=code, shipping=shipping, now=now)
    if not quoted.ok:
        return quoted
    q: Quote = quoted.value

    # a code beaten by standing discounts on every line is not consumed
    redeemed = q.code.discount_code if q.code and q.code_used else None

    manager = OrderLifecycleManager(db, notifier=notifier)
    return manager.create_order(
        shop_id=shop_id,
        customer_id=customer_id,
        lines=q.lines,
        totals=q.totals,
        order_source=q.order_source,
        discount_code=redeemed,
        processed_by=processed_by,
        notes=notes,
    )
