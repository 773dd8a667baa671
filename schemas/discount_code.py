from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

from models.enums import OrderSource
from schemas.discount import PromotionUpdate, PromotionWindow

CODE_PATTERN = r"^[A-Z0-9_-]+$"


class DiscountCodeCreate(PromotionWindow):
    code: str = Field(min_length=6, max_length=16, pattern=CODE_PATTERN)
    is_active: bool = True
    usage_limit: Optional[int] = Field(None, ge=1, le=100000)
    customer_ids: List[int] = []

    @field_validator("code", mode="before")
    @classmethod
    def normalize_code(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class DiscountCodeUpdate(PromotionUpdate):
    is_active: Optional[bool] = None
    usage_limit: Optional[int] = Field(None, ge=1, le=100000)


class DiscountCodeOut(BaseModel):
    id: int
    code: str
    title: Optional[str] = None
    percentage: int
    is_active: bool
    start_date: datetime
    end_date: datetime
    usage_limit: Optional[int] = None
    used_count: int
    available_online: bool
    available_in_store: bool
    target_type: str

    class Config:
        from_attributes = True


class CartLineIn(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    quantity: int = Field(ge=1)


class ValidateCodeRequest(BaseModel):
    code: str
    order_source: OrderSource = OrderSource.ONLINE
    customer_id: Optional[int] = None
    items: List[CartLineIn]


class ValidateCodeResponse(BaseModel):
    valid: bool
    error: Optional[str] = None
    error_kind: Optional[str] = None
    code: Optional[str] = None
    percentage: Optional[int] = None
    discount_amount: float = 0
    subtotal: float = 0
    order_total: Optional[float] = None


class RecentOrderOut(BaseModel):
    id: int
    order_number: str
    total: float
    discount: float
    created_at: datetime

    class Config:
        from_attributes = True


class DiscountCodeStatsOut(BaseModel):
    id: int
    code: str
    percentage: int
    used_count: int
    usage_limit: Optional[int] = None
    total_discount_given: float
    recent_orders: List[RecentOrderOut]
