from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Table, Column, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


discount_code_products = Table(
    "discount_code_products",
    Base.metadata,
    Column("discount_code_id", Integer, ForeignKey("discount_codes.id", ondelete="CASCADE"), primary_key=True),
    Column("product_id", Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)

discount_code_variants = Table(
    "discount_code_variants",
    Base.metadata,
    Column("discount_code_id", Integer, ForeignKey("discount_codes.id", ondelete="CASCADE"), primary_key=True),
    Column("variant_id", Integer, ForeignKey("product_variants.id", ondelete="CASCADE"), primary_key=True),
)

# Customers a code is restricted to; empty means anyone may redeem it
discount_code_customers = Table(
    "discount_code_customers",
    Base.metadata,
    Column("discount_code_id", Integer, ForeignKey("discount_codes.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class DiscountCode(Base):
    __tablename__ = "discount_codes"
    __table_args__ = (UniqueConstraint("shop_id", "code", name="uq_discount_codes_shop_code"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), index=True)
    code: Mapped[str] = mapped_column(String(16), index=True)
    title: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    percentage: Mapped[int] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    start_date: Mapped[datetime] = mapped_column(DateTime)
    end_date: Mapped[datetime] = mapped_column(DateTime)

    # used_count only moves through services.discount_codes.apply_discount_code
    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, default=0)

    available_online: Mapped[bool] = mapped_column(Boolean, default=True)
    available_in_store: Mapped[bool] = mapped_column(Boolean, default=True)

    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    shop = relationship("Shop")
    category = relationship("Category")
    products = relationship("Product", secondary=discount_code_products)
    variants = relationship("ProductVariant", secondary=discount_code_variants)
    customers = relationship("User", secondary=discount_code_customers)
