from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional

from models.enums import OrderSource, OrderStatus, PaymentStatus


class OrderItemIn(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    quantity: int = Field(ge=1)


class CheckoutRequest(BaseModel):
    items: List[OrderItemIn]
    order_source: OrderSource = OrderSource.ONLINE
    discount_code: Optional[str] = None
    # In-store orders are placed by staff on behalf of a customer
    customer_id: Optional[int] = None
    shipping: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class QuoteLineOut(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    name: str
    quantity: int
    original_price: float
    unit_price: float
    discount_percentage: int
    discount_source: Optional[str] = None
    discount_amount: float
    tax_amount: float
    total: float


class QuoteOut(BaseModel):
    order_source: OrderSource
    lines: List[QuoteLineOut]
    subtotal: float
    discount: float
    tax: float
    shipping: float
    total: float
    discount_code: Optional[str] = None


class OrderItemOut(BaseModel):
    id: int
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    product_name: str
    quantity: int
    original_price: float
    unit_price: float
    discount_percentage: int
    discount_amount: float
    discount_source: Optional[str] = None
    tax_rate: float
    tax_amount: float
    total: float

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    order_number: str
    order_source: str
    status: str
    payment_status: str
    user_id: Optional[int] = None
    subtotal: float
    tax: float
    shipping: float
    discount: float
    total: float
    discount_code_value: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    items: List[OrderItemOut]

    class Config:
        from_attributes = True


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus
