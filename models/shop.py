from datetime import datetime
from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base
from models.enums import PlanType


class Shop(Base):
    __tablename__ = "shops"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(150), index=True)
    domain: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)

    # Subscription plan gates quotas (see SystemLimit)
    plan_type: Mapped[str] = mapped_column(String(20), default=PlanType.STANDARD.value)

    # Soft-deactivation, shops are rarely deleted
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
