from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.tenancy import Principal, get_current_principal, get_current_shop, require_staff, unwrap
from models.enums import OrderSource, Role
from models.shop import Shop
from models.user import User
from schemas.order import (
    CheckoutRequest,
    OrderOut,
    OrderStatusUpdate,
    PaymentStatusUpdate,
    QuoteLineOut,
    QuoteOut,
)
from services import checkout
from services.checkout import CartItem, Quote
from services.orders import OrderLifecycleManager

router = APIRouter(tags=["orders"])


def _resolve_customer(data: CheckoutRequest, principal: Principal, shop: Shop, db: Session) -> tuple[Optional[int], Optional[int]]:
    """Return (customer_id, processed_by) for a checkout request."""
    if not principal.is_staff:
        if data.order_source == OrderSource.IN_STORE:
            raise HTTPException(status_code=403, detail="In-store orders are placed by shop staff")
        return principal.id, None

    if data.customer_id is not None:
        customer = db.query(User).filter(
            User.id == data.customer_id, User.shop_id == shop.id, User.role == Role.CUSTOMER.value
        ).one_or_none()
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
    return data.customer_id, principal.id


def _cart_items(data: CheckoutRequest) -> List[CartItem]:
    return [CartItem(product_id=i.product_id, variant_id=i.variant_id, quantity=i.quantity) for i in data.items]


def _quote_out(q: Quote) -> QuoteOut:
    return QuoteOut(
        order_source=q.order_source,
        lines=[
            QuoteLineOut(
                product_id=p.line.product_id,
                variant_id=p.line.variant_id,
                name=p.line.name,
                quantity=p.line.quantity,
                original_price=p.price.original_unit_price,
                unit_price=p.price.unit_price,
                discount_percentage=p.price.discount_percentage,
                discount_source=p.discount_source,
                discount_amount=p.price.discount_amount,
                tax_amount=p.price.tax_amount,
                total=p.price.line_total,
            )
            for p in q.lines
        ],
        subtotal=q.totals.subtotal,
        discount=q.totals.discount,
        tax=q.totals.tax,
        shipping=q.totals.shipping,
        total=q.totals.total,
        discount_code=q.code.discount_code.code if q.code and q.code_used else None,
    )


@router.post("/checkout/quote", response_model=QuoteOut)
def quote_order(
    data: CheckoutRequest,
    principal: Principal = Depends(get_current_principal),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    customer_id, _ = _resolve_customer(data, principal, shop, db)
    q = unwrap(checkout.quote(
        db, shop.id, data.order_source, customer_id, _cart_items(data),
        code=data.discount_code, shipping=data.shipping,
    ))
    return _quote_out(q)


@router.post("/orders/", response_model=OrderOut, status_code=201)
def create_order(
    data: CheckoutRequest,
    principal: Principal = Depends(get_current_principal),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    customer_id, processed_by = _resolve_customer(data, principal, shop, db)
    return unwrap(checkout.place_order(
        db, shop.id, data.order_source, customer_id, _cart_items(data),
        code=data.discount_code, processed_by=processed_by, notes=data.notes, shipping=data.shipping,
    ))


@router.get("/orders/", response_model=List[OrderOut])
def list_orders(
    status: Optional[str] = None,
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    return OrderLifecycleManager(db).list_orders(shop.id, status=status)


@router.get("/orders/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    order = unwrap(OrderLifecycleManager(db).get_order(shop.id, order_id))
    if not principal.is_staff and order.user_id != principal.id:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.patch("/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    return unwrap(OrderLifecycleManager(db).update_status(shop.id, order_id, data.status))


@router.patch("/orders/{order_id}/payment-status", response_model=OrderOut)
def update_payment_status(
    order_id: int,
    data: PaymentStatusUpdate,
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    return unwrap(OrderLifecycleManager(db).update_payment_status(shop.id, order_id, data.payment_status))


@router.post("/orders/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    return unwrap(OrderLifecycleManager(db).cancel_order(shop.id, order_id))
