from datetime import datetime
from pydantic import BaseModel, Field, model_validator
from typing import List, Optional


class PromotionWindow(BaseModel):
    """Fields shared by standing discounts and discount codes."""

    title: Optional[str] = Field(None, max_length=64)
    description: Optional[str] = Field(None, max_length=512)
    percentage: int = Field(ge=1, le=100)
    start_date: datetime
    end_date: datetime
    available_online: bool = True
    available_in_store: bool = True
    category_id: Optional[int] = None
    product_ids: List[int] = []
    variant_ids: List[int] = []

    @model_validator(mode="after")
    def check_window_and_target(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        if not (self.available_online or self.available_in_store):
            raise ValueError("At least one availability option (Online or In-Store) must be selected")
        kinds = sum(1 for selected in (self.category_id, self.product_ids, self.variant_ids) if selected)
        if kinds > 1:
            raise ValueError("Target either a category, a set of products or a set of variants, not several")
        return self


class DiscountCreate(PromotionWindow):
    enabled: bool = True


class DiscountOut(BaseModel):
    id: int
    title: Optional[str] = None
    percentage: int
    enabled: bool
    start_date: datetime
    end_date: datetime
    available_online: bool
    available_in_store: bool
    target_type: str

    class Config:
        from_attributes = True


class PromotionUpdate(BaseModel):
    """Partial edit of a promotion; targets are fixed once created."""

    title: Optional[str] = Field(None, max_length=64)
    description: Optional[str] = Field(None, max_length=512)
    percentage: Optional[int] = Field(None, ge=1, le=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    available_online: Optional[bool] = None
    available_in_store: Optional[bool] = None


class DiscountUpdate(PromotionUpdate):
    enabled: Optional[bool] = None
