from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.tenancy import Principal, get_current_shop, require_staff, require_superadmin, unwrap
from models.shop import Shop
from models.system_limit import SystemLimit
from routes.discounts import plan_of
from schemas.system_limit import LimitCheckOut, SystemLimitCreate, SystemLimitOut, SystemLimitUpdate
from services import plan_limits
from services.plan_limits import Resource

router = APIRouter(tags=["limits"])


@router.get("/limits/{resource}", response_model=LimitCheckOut)
def check_limit(
    resource: Resource,
    principal: Principal = Depends(require_staff),
    shop: Shop = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    return plan_limits.check_limit(db, shop.id, plan_of(principal, shop), resource)


@router.get("/admin/system-limits", response_model=List[SystemLimitOut])
def list_system_limits(principal: Principal = Depends(require_superadmin), db: Session = Depends(get_db)):
    return db.query(SystemLimit).order_by(SystemLimit.code_name).all()


@router.post("/admin/system-limits", response_model=SystemLimitOut, status_code=201)
def create_system_limit(
    data: SystemLimitCreate,
    principal: Principal = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    return unwrap(plan_limits.create_system_limit(
        db,
        code_name=data.code_name,
        name=data.name,
        value=data.value,
        category=data.category,
        plan_type=data.plan_type.value if data.plan_type else None,
        description=data.description,
    ))


@router.patch("/admin/system-limits/{code_name}", response_model=SystemLimitOut)
def update_system_limit(
    code_name: str,
    data: SystemLimitUpdate,
    principal: Principal = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    return unwrap(plan_limits.update_system_limit(db, code_name, value=data.value, is_active=data.is_active))
