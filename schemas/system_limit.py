from pydantic import BaseModel, Field
from typing import Optional

from models.enums import PlanType


class SystemLimitCreate(BaseModel):
    code_name: str = Field(min_length=3, max_length=100)
    name: str
    description: Optional[str] = None
    value: int = Field(ge=-1)
    category: str
    plan_type: Optional[PlanType] = None


class SystemLimitUpdate(BaseModel):
    value: Optional[int] = Field(None, ge=-1)
    is_active: Optional[bool] = None


class SystemLimitOut(BaseModel):
    id: int
    code_name: str
    name: str
    description: Optional[str] = None
    value: int
    category: str
    plan_type: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class LimitCheckOut(BaseModel):
    allowed: bool
    limit: int
    current: int
    message: Optional[str] = None
