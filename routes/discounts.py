from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.tenancy import Principal, get_current_shop, require_staff, unwrap
from models.category import Category
from models.discount import Discount
from models.product import Product, ProductVariant
from models.shop import Shop
from schemas.discount import DiscountCreate, DiscountOut, DiscountUpdate, PromotionUpdate, PromotionWindow
from services import plan_limits
from services.plan_limits import Resource
from services.targeting import load_target, target_kind

router = APIRouter(prefix="/discounts", tags=["discounts"])


def plan_of(principal: Principal, shop: Shop) -> str:
    return principal.plan_type.value if principal.plan_type else shop.plan_type


def load_targets(data: PromotionWindow, shop: Shop, db: Session) -> dict:
    """Fetch the shop-owned rows a promotion points at; 404 on anything foreign or missing."""
    targets = {"category": None, "products": [], "variants": []}
    if data.category_id:
        targets["category"] = db.query(Category).filter(
            Category.id == data.category_id, Category.shop_id == shop.id
        ).one_or_none()
        if not targets["category"]:
            raise HTTPException(status_code=404, detail="Category not found for this shop")
    if data.product_ids:
        targets["products"] = db.query(Product).filter(
            Product.id.in_(data.product_ids), Product.shop_id == shop.id, Product.deleted_at.is_(None)
        ).all()
        if len(targets["products"]) != len(set(data.product_ids)):
            raise HTTPException(status_code=404, detail="One or more products not found for this shop")
    if data.variant_ids:
        targets["variants"] = db.query(ProductVariant).join(Product).filter(
            ProductVariant.id.in_(data.variant_ids), Product.shop_id == shop.id
        ).all()
        if len(targets["variants"]) != len(set(data.variant_ids)):
            raise HTTPException(status_code=404, detail="One or more variants not found for this shop")
    return targets


PROMOTION_FIELDS = (
    "title", "description", "percentage", "start_date", "end_date", "available_online", "available_in_store",
)


def apply_promotion_update(promotion, data: PromotionUpdate) -> None:
    """Copy the supplied fields onto ``promotion`` once the merged window and channels check out."""
    changes = {field: getattr(data, field) for field in PROMOTION_FIELDS if getattr(data, field) is not None}
    start = changes.get("start_date", promotion.start_date)
    end = changes.get("end_date", promotion.end_date)
    if end <= start:
        raise HTTPException(status_code=422, detail="End date must be after start date")
    if not (changes.get("available_online", promotion.available_online)
            or changes.get("available_in_store", promotion.available_in_store)):
        raise HTTPException(status_code=422, detail="At least one availability option (Online or In-Store) must be selected")
    for field, value in changes.items():
        setattr(promotion, field, value)


def _discount_out(discount: Discount) -> DiscountOut:
    return DiscountOut(
        id=discount.id,
        title=discount.title,
        percentage=discount.percentage,
        enabled=discount.enabled,
        start_date=discount.start_date,
        end_date=discount.end_date,
        available_online=discount.available_online,
        available_in_store=discount.available_in_store,
        target_type=target_kind(load_target(discount)),
    )


@router.get("/", response_model=List[DiscountOut])
def list_discounts(
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    return [_discount_out(d) for d in db.query(Discount).filter(Discount.shop_id == shop.id).all()]


@router.post("/", response_model=DiscountOut, status_code=201)
def create_discount(
    data: DiscountCreate,
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    targets = load_targets(data, shop, db)

    # advisory: see services.plan_limits
    if data.enabled:
        unwrap(plan_limits.ensure_within_limit(db, shop.id, plan_of(principal, shop), Resource.DISCOUNTS))

    discount = Discount(
        shop_id=shop.id,
        title=data.title,
        description=data.description,
        percentage=data.percentage,
        enabled=data.enabled,
        start_date=data.start_date,
        end_date=data.end_date,
        available_online=data.available_online,
        available_in_store=data.available_in_store,
        category_id=targets["category"].id if targets["category"] else None,
        products=targets["products"],
        variants=targets["variants"],
    )
    db.add(discount)
    db.commit()
    db.refresh(discount)
    return _discount_out(discount)


@router.patch("/{discount_id}", response_model=DiscountOut)
def update_discount(
    discount_id: int,
    data: DiscountUpdate,
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    discount = db.query(Discount).filter(Discount.shop_id == shop.id, Discount.id == discount_id).one_or_none()
    if not discount:
        raise HTTPException(status_code=404, detail="Discount not found")

    # re-enabling takes a slot again
    if data.enabled and not discount.enabled:
        unwrap(plan_limits.ensure_within_limit(db, shop.id, plan_of(principal, shop), Resource.DISCOUNTS))

    apply_promotion_update(discount, data)
    if data.enabled is not None:
        discount.enabled = data.enabled

    db.commit()
    db.refresh(discount)
    return _discount_out(discount)


@router.delete("/{discount_id}", status_code=204)
def delete_discount(
    discount_id: int,
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    discount = db.query(Discount).filter(Discount.shop_id == shop.id, Discount.id == discount_id).one_or_none()
    if not discount:
        raise HTTPException(status_code=404, detail="Discount not found")
    db.delete(discount)
    db.commit()
    return None
