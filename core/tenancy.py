from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from core.db import get_db
from core.errors import Result, http_status_for
from models.enums import PlanType, Role
from models.shop import Shop
from security import jwt as jwt_utils


@dataclass(frozen=True)
class Principal:
    """Caller identity as supplied by the identity provider; trusted as-is."""

    id: int
    shop_id: Optional[int]
    role: Role
    plan_type: Optional[PlanType]

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.SHOP_ADMIN, Role.SHOP_STAFF)


def get_current_principal(authorization: Optional[str] = Header(default=None, alias="Authorization")) -> Principal:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt_utils.decode_access(token)
        return Principal(
            id=int(payload["sub"]),
            shop_id=payload.get("shop_id"),
            role=Role(payload.get("role", Role.CUSTOMER.value)),
            plan_type=PlanType(payload["plan_type"]) if payload.get("plan_type") else None,
        )
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_current_shop(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)) -> Shop:
    """FastAPI dependency that returns the shop the caller belongs to."""
    if principal.shop_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No shop associated with this account")

    shop = db.query(Shop).filter(Shop.id == principal.shop_id).one_or_none()
    if not shop:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shop not found")

    # Check if shop is active
    if not shop.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Shop is inactive")

    return shop


def require_roles(*roles: Role):
    """Dependency to require one of ``roles``."""
    def _check_role(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of: {', '.join(r.value for r in roles)}",
            )
        return principal
    return _check_role


require_staff = require_roles(Role.SHOP_ADMIN, Role.SHOP_STAFF)
require_superadmin = require_roles(Role.SUPER_ADMIN)


def unwrap(result: Result):
    """Return the value of a successful result or raise the matching HTTP error."""
    if not result.ok:
        raise HTTPException(status_code=http_status_for(result.error.kind), detail=result.error.message)
    return result.value
