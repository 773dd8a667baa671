import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session, selectinload

from core import clock
from core.errors import DomainError, ErrorKind, Result
from models.discount_code import DiscountCode
from models.enums import OrderSource
from models.order import Order
from services.pricing import HUNDRED, ZERO, round_money, to_decimal
from services.targeting import (
    CartLine,
    CategoryTarget,
    StorewideTarget,
    Target,
    VariantTarget,
    load_target,
    target_matches,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CodeSummary:
    id: int
    code: str
    percentage: int
    title: Optional[str] = None
    description: Optional[str] = None


@dataclass
class CodeValidation:
    valid: bool
    error: Optional[DomainError] = None
    discount_code: Optional[CodeSummary] = None
    target: Optional[Target] = None
    applicable_lines: List[CartLine] = field(default_factory=list)
    discount_amount: Decimal = ZERO
    order_total: Optional[Decimal] = None

    @classmethod
    def rejected(cls, kind: ErrorKind, message: str) -> "CodeValidation":
        return cls(valid=False, error=DomainError(kind, message))

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error else None

    def applies_to(self, line: CartLine) -> bool:
        return self.valid and line in self.applicable_lines


def find_code(db: Session, code: str, shop_id: int) -> Optional[DiscountCode]:
    return (
        db.query(DiscountCode)
        .options(
            selectinload(DiscountCode.products),
            selectinload(DiscountCode.variants),
            selectinload(DiscountCode.customers),
            selectinload(DiscountCode.category),
        )
        .filter(
            DiscountCode.code == code.strip().upper(),
            DiscountCode.shop_id == shop_id,
            DiscountCode.is_active.is_(True),
        )
        .one_or_none()
    )


def _mismatch_message(target: Target) -> str:
    if isinstance(target, CategoryTarget):
        return f'This discount code only applies to products in the "{target.category_name}" category'
    if isinstance(target, VariantTarget):
        return "This discount code only applies to specific variants not in your cart"
    return "This discount code only applies to specific products not in your cart"


def applicable_lines(target: Target, lines: List[CartLine]) -> List[CartLine]:
    if isinstance(target, StorewideTarget):
        return list(lines)
    return [line for line in lines if target_matches(target, line)]


def validate(
    db: Session,
    code: str,
    shop_id: int,
    order_source: OrderSource | str,
    customer_id: Optional[int],
    cart_lines: List[CartLine],
    subtotal,
    now: Optional[datetime] = None,
) -> CodeValidation:
    """Check a redemption attempt, stopping at the first failing rule.

    The usage-limit check here is advisory; ``apply_discount_code`` enforces
    it again atomically when the order is stored.
    """
    now = now or clock.now()
    source = OrderSource(order_source)

    discount_code = find_code(db, code, shop_id)
    if not discount_code:
        return CodeValidation.rejected(ErrorKind.NOT_FOUND, "Invalid discount code")

    if now < discount_code.start_date:
        return CodeValidation.rejected(ErrorKind.WINDOW_CLOSED, "This discount code is not yet active")
    if now > discount_code.end_date:
        return CodeValidation.rejected(ErrorKind.WINDOW_CLOSED, "This discount code has expired")

    if discount_code.usage_limit is not None and discount_code.used_count >= discount_code.usage_limit:
        return CodeValidation.rejected(ErrorKind.LIMIT_REACHED, "This discount code has reached its usage limit")

    if source == OrderSource.ONLINE and not discount_code.available_online:
        return CodeValidation.rejected(ErrorKind.CHANNEL_DENIED, "This discount code is not available for online orders")
    if source == OrderSource.IN_STORE and not discount_code.available_in_store:
        return CodeValidation.rejected(ErrorKind.CHANNEL_DENIED, "This discount code is not available for in-store orders")

    allowed_customers = {user.id for user in discount_code.customers}
    if allowed_customers and customer_id not in allowed_customers:
        return CodeValidation.rejected(ErrorKind.TARGET_MISMATCH, "This discount code is not available for your account")

    target = load_target(discount_code)
    lines = applicable_lines(target, cart_lines)
    if not lines:
        return CodeValidation.rejected(ErrorKind.TARGET_MISMATCH, _mismatch_message(target))

    applicable_amount = sum((line.amount for line in lines), ZERO)
    discount_amount = round_money(applicable_amount * discount_code.percentage / HUNDRED)

    return CodeValidation(
        valid=True,
        discount_code=CodeSummary(
            id=discount_code.id,
            code=discount_code.code,
            percentage=discount_code.percentage,
            title=discount_code.title,
            description=discount_code.description,
        ),
        target=target,
        applicable_lines=lines,
        discount_amount=discount_amount,
        order_total=round_money(to_decimal(subtotal) - discount_amount),
    )


def apply_discount_code(db: Session, discount_code_id: int) -> Result:
    """Consume one use of a code.

    A single conditional UPDATE both checks the limit and increments, so two
    redemptions racing for the last use cannot both succeed. The caller owns
    the transaction and commits it together with the order.
    """
    stmt = (
        update(DiscountCode)
        .where(
            DiscountCode.id == discount_code_id,
            or_(DiscountCode.usage_limit.is_(None), DiscountCode.used_count < DiscountCode.usage_limit),
        )
        .values(used_count=DiscountCode.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount == 1:
        logger.info("discount code %s applied", discount_code_id)
        return Result.success(discount_code_id)

    if db.get(DiscountCode, discount_code_id) is None:
        return Result.failure(ErrorKind.NOT_FOUND, "Invalid discount code")
    logger.info("discount code %s rejected at apply time: usage limit reached", discount_code_id)
    return Result.failure(ErrorKind.LIMIT_REACHED, "This discount code has reached its usage limit")


def get_discount_code_stats(db: Session, shop_id: int, discount_code_id: int) -> Result:
    discount_code = (
        db.query(DiscountCode)
        .filter(DiscountCode.id == discount_code_id, DiscountCode.shop_id == shop_id)
        .one_or_none()
    )
    if not discount_code:
        return Result.failure(ErrorKind.NOT_FOUND, "Discount code not found")

    recent_orders = (
        db.query(Order)
        .filter(Order.discount_code_id == discount_code_id, Order.shop_id == shop_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(10)
        .all()
    )
    total_discount = (
        db.query(func.coalesce(func.sum(Order.discount), 0))
        .filter(Order.discount_code_id == discount_code_id, Order.shop_id == shop_id)
        .scalar()
    )
    return Result.success({
        "id": discount_code.id,
        "code": discount_code.code,
        "percentage": discount_code.percentage,
        "used_count": discount_code.used_count,
        "usage_limit": discount_code.usage_limit,
        "recent_orders": recent_orders,
        "total_discount_given": round_money(to_decimal(total_discount)),
    })
