from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base


class SystemLimit(Base):
    __tablename__ = "system_limits"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    # e.g. STANDARD_DISCOUNT_CODES_LIMIT
    code_name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    value: Mapped[int] = mapped_column(Integer)  # -1 = unlimited
    category: Mapped[str] = mapped_column(String(50))
    plan_type: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
