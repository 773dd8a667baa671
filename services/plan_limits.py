"""Plan quotas backed by ``SystemLimit`` rows.

Checks are advisory: nothing is locked between the count and the caller's
insert, so concurrent creations can admit one resource past the limit.
Callers re-check right before they insert to keep that window small.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.errors import ErrorKind, Result
from models.category import Category
from models.discount import Discount
from models.discount_code import DiscountCode
from models.enums import PlanType
from models.product import Product
from models.system_limit import SystemLimit

logger = logging.getLogger(__name__)

UNLIMITED = -1


class Resource(str, Enum):
    DISCOUNTS = "DISCOUNTS"
    DISCOUNT_CODES = "DISCOUNT_CODES"
    PRODUCTS = "PRODUCTS"
    CATEGORIES = "CATEGORIES"


_LABELS = {
    Resource.DISCOUNTS: "active discounts",
    Resource.DISCOUNT_CODES: "active discount codes",
    Resource.PRODUCTS: "products",
    Resource.CATEGORIES: "categories",
}


def _count_discounts(db: Session, shop_id: int) -> int:
    return db.query(func.count(Discount.id)).filter(Discount.shop_id == shop_id, Discount.enabled.is_(True)).scalar()


def _count_discount_codes(db: Session, shop_id: int) -> int:
    return (
        db.query(func.count(DiscountCode.id))
        .filter(DiscountCode.shop_id == shop_id, DiscountCode.is_active.is_(True))
        .scalar()
    )


def _count_products(db: Session, shop_id: int) -> int:
    return db.query(func.count(Product.id)).filter(Product.shop_id == shop_id, Product.deleted_at.is_(None)).scalar()


def _count_categories(db: Session, shop_id: int) -> int:
    return db.query(func.count(Category.id)).filter(Category.shop_id == shop_id).scalar()


_COUNTERS: Dict[Resource, Callable[[Session, int], int]] = {
    Resource.DISCOUNTS: _count_discounts,
    Resource.DISCOUNT_CODES: _count_discount_codes,
    Resource.PRODUCTS: _count_products,
    Resource.CATEGORIES: _count_categories,
}


@dataclass(frozen=True)
class LimitCheck:
    allowed: bool
    limit: int
    current: int
    message: Optional[str] = None


def limit_code_name(plan_type: PlanType | str, resource: Resource | str) -> str:
    return f"{PlanType(plan_type).value}_{Resource(resource).value}_LIMIT"


def get_system_limit(db: Session, code_name: str) -> int:
    row = (
        db.query(SystemLimit)
        .filter(SystemLimit.code_name == code_name, SystemLimit.is_active.is_(True))
        .one_or_none()
    )
    return row.value if row else UNLIMITED


def check_limit(db: Session, shop_id: int, plan_type: PlanType | str, resource: Resource | str) -> LimitCheck:
    plan = PlanType(plan_type)
    resource = Resource(resource)
    limit = get_system_limit(db, limit_code_name(plan, resource))
    if limit == UNLIMITED:
        return LimitCheck(allowed=True, limit=UNLIMITED, current=0)

    current = _COUNTERS[resource](db, shop_id)
    if current < limit:
        return LimitCheck(allowed=True, limit=limit, current=current)

    logger.info("shop %s at %s limit %s/%s", shop_id, resource.value, current, limit)
    return LimitCheck(
        allowed=False,
        limit=limit,
        current=current,
        message=f"You have reached the maximum of {limit} {_LABELS[resource]} for your {plan.value.lower()} plan.",
    )


def ensure_within_limit(db: Session, shop_id: int, plan_type: PlanType | str, resource: Resource | str) -> Result:
    """``check_limit`` as a typed result for creation paths."""
    check = check_limit(db, shop_id, plan_type, resource)
    if not check.allowed:
        return Result.failure(ErrorKind.LIMIT_REACHED, check.message)
    return Result.success(check)


def get_plan_limits(db: Session, plan_type: PlanType | str) -> Dict[str, int]:
    rows = (
        db.query(SystemLimit)
        .filter(SystemLimit.plan_type == PlanType(plan_type).value, SystemLimit.is_active.is_(True))
        .all()
    )
    return {row.code_name: row.value for row in rows}


def create_system_limit(db: Session, code_name: str, name: str, value: int, category: str,
                        plan_type: Optional[str] = None, description: Optional[str] = None) -> Result:
    if value < UNLIMITED:
        return Result.failure(ErrorKind.VALIDATION, "Limit value must be -1 (unlimited) or greater")
    if db.query(SystemLimit).filter(SystemLimit.code_name == code_name).one_or_none():
        return Result.failure(ErrorKind.VALIDATION, f"System limit {code_name} already exists")

    row = SystemLimit(
        code_name=code_name,
        name=name,
        description=description,
        value=value,
        category=category,
        plan_type=plan_type,
        is_active=True,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("system limit %s created with value %s", code_name, value)
    return Result.success(row)


def update_system_limit(db: Session, code_name: str, value: Optional[int] = None,
                        is_active: Optional[bool] = None) -> Result:
    row = db.query(SystemLimit).filter(SystemLimit.code_name == code_name).one_or_none()
    if not row:
        return Result.failure(ErrorKind.NOT_FOUND, f"System limit {code_name} not found")
    if value is not None:
        if value < UNLIMITED:
            return Result.failure(ErrorKind.VALIDATION, "Limit value must be -1 (unlimited) or greater")
        row.value = value
    if is_active is not None:
        row.is_active = is_active
    db.commit()
    db.refresh(row)
    logger.info("system limit %s updated to %s", code_name, row.value)
    return Result.success(row)


DEFAULT_SYSTEM_LIMITS = [
    (PlanType.STANDARD, Resource.DISCOUNTS, 3),
    (PlanType.STANDARD, Resource.DISCOUNT_CODES, 15),
    (PlanType.STANDARD, Resource.PRODUCTS, 100),
    (PlanType.ADVANCED, Resource.DISCOUNTS, 15),
    (PlanType.ADVANCED, Resource.DISCOUNT_CODES, 15),
    (PlanType.ADVANCED, Resource.PRODUCTS, 1000),
    (PlanType.PREMIUM, Resource.DISCOUNTS, UNLIMITED),
    (PlanType.PREMIUM, Resource.DISCOUNT_CODES, UNLIMITED),
    (PlanType.PREMIUM, Resource.PRODUCTS, UNLIMITED),
]


def seed_system_limits(db: Session) -> int:
    """Insert the default quotas that are missing; returns how many were added."""
    existing = {code for (code,) in db.query(SystemLimit.code_name).all()}
    added = 0
    for plan, resource, value in DEFAULT_SYSTEM_LIMITS:
        code_name = limit_code_name(plan, resource)
        if code_name in existing:
            continue
        db.add(SystemLimit(
            code_name=code_name,
            name=f"{plan.value.title()} Plan - {_LABELS[resource].capitalize()} Limit",
            value=value,
            category=resource.value,
            plan_type=plan.value,
            is_active=True,
        ))
        added += 1
    db.commit()
    return added
