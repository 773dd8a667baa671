from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.tenancy import Principal, get_current_principal, get_current_shop, require_staff, unwrap
from models.discount_code import DiscountCode
from models.enums import Role
from models.shop import Shop
from models.user import User
from routes.discounts import apply_promotion_update, load_targets, plan_of
from schemas.discount_code import (
    DiscountCodeCreate,
    DiscountCodeOut,
    DiscountCodeStatsOut,
    DiscountCodeUpdate,
    RecentOrderOut,
    ValidateCodeRequest,
    ValidateCodeResponse,
)
from services import discount_codes, plan_limits
from services.checkout import CartItem, build_cart_lines
from services.plan_limits import Resource
from services.targeting import load_target, target_kind

router = APIRouter(prefix="/discount-codes", tags=["discount-codes"])


def _code_out(code: DiscountCode) -> DiscountCodeOut:
    return DiscountCodeOut(
        id=code.id,
        code=code.code,
        title=code.title,
        percentage=code.percentage,
        is_active=code.is_active,
        start_date=code.start_date,
        end_date=code.end_date,
        usage_limit=code.usage_limit,
        used_count=code.used_count,
        available_online=code.available_online,
        available_in_store=code.available_in_store,
        target_type=target_kind(load_target(code)),
    )


@router.get("/", response_model=List[DiscountCodeOut])
def list_discount_codes(
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    return [_code_out(c) for c in db.query(DiscountCode).filter(DiscountCode.shop_id == shop.id).all()]


@router.post("/", response_model=DiscountCodeOut, status_code=201)
def create_discount_code(
    data: DiscountCodeCreate,
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    existing = db.query(DiscountCode).filter(DiscountCode.shop_id == shop.id, DiscountCode.code == data.code).one_or_none()
    if existing:
        raise HTTPException(status_code=400, detail="Discount code already exists in this shop")

    targets = load_targets(data, shop, db)
    customers = []
    if data.customer_ids:
        customers = db.query(User).filter(
            User.id.in_(data.customer_ids), User.shop_id == shop.id, User.role == Role.CUSTOMER.value
        ).all()
        if len(customers) != len(set(data.customer_ids)):
            raise HTTPException(status_code=404, detail="One or more customers not found for this shop")

    # advisory: see services.plan_limits
    if data.is_active:
        unwrap(plan_limits.ensure_within_limit(db, shop.id, plan_of(principal, shop), Resource.DISCOUNT_CODES))

    code = DiscountCode(
        shop_id=shop.id,
        code=data.code,
        title=data.title,
        description=data.description,
        percentage=data.percentage,
        is_active=data.is_active,
        start_date=data.start_date,
        end_date=data.end_date,
        usage_limit=data.usage_limit,
        used_count=0,
        available_online=data.available_online,
        available_in_store=data.available_in_store,
        category_id=targets["category"].id if targets["category"] else None,
        products=targets["products"],
        variants=targets["variants"],
        customers=customers,
    )
    db.add(code)
    db.commit()
    db.refresh(code)
    return _code_out(code)


@router.post("/validate", response_model=ValidateCodeResponse)
def validate_discount_code(
    data: ValidateCodeRequest,
    principal: Principal = Depends(get_current_principal),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    customer_id = data.customer_id if principal.is_staff else principal.id
    items = [CartItem(product_id=i.product_id, variant_id=i.variant_id, quantity=i.quantity) for i in data.items]
    lines = unwrap(build_cart_lines(db, shop.id, items))
    subtotal = sum(line.amount for line in lines)

    result = discount_codes.validate(db, data.code, shop.id, data.order_source, customer_id, lines, subtotal)
    if not result.valid:
        return ValidateCodeResponse(
            valid=False,
            error=result.error.message,
            error_kind=result.error.kind.value,
            subtotal=subtotal,
        )
    return ValidateCodeResponse(
        valid=True,
        code=result.discount_code.code,
        percentage=result.discount_code.percentage,
        discount_amount=result.discount_amount,
        subtotal=subtotal,
        order_total=result.order_total,
    )


@router.get("/{code_id}/stats", response_model=DiscountCodeStatsOut)
def discount_code_stats(
    code_id: int,
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    stats = unwrap(discount_codes.get_discount_code_stats(db, shop.id, code_id))
    stats["recent_orders"] = [RecentOrderOut.model_validate(o) for o in stats["recent_orders"]]
    return DiscountCodeStatsOut(**stats)


@router.patch("/{code_id}", response_model=DiscountCodeOut)
def update_discount_code(
    code_id: int,
    data: DiscountCodeUpdate,
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    code = db.query(DiscountCode).filter(DiscountCode.shop_id == shop.id, DiscountCode.id == code_id).one_or_none()
    if not code:
        raise HTTPException(status_code=404, detail="Discount code not found")

    if data.usage_limit is not None and data.usage_limit < code.used_count:
        raise HTTPException(
            status_code=422, detail=f"Usage limit cannot be lower than the {code.used_count} uses already made"
        )
    # reactivating takes a slot again
    if data.is_active and not code.is_active:
        unwrap(plan_limits.ensure_within_limit(db, shop.id, plan_of(principal, shop), Resource.DISCOUNT_CODES))

    apply_promotion_update(code, data)
    if data.is_active is not None:
        code.is_active = data.is_active
    if data.usage_limit is not None:
        code.usage_limit = data.usage_limit

    db.commit()
    db.refresh(code)
    return _code_out(code)


@router.delete("/{code_id}", status_code=204)
def delete_discount_code(
    code_id: int,
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    code = db.query(DiscountCode).filter(DiscountCode.shop_id == shop.id, DiscountCode.id == code_id).one_or_none()
    if not code:
        raise HTTPException(status_code=404, detail="Discount code not found")
    # orders keep discount_code_value; their discount_code_id goes NULL
    db.delete(code)
    db.commit()
    return None
