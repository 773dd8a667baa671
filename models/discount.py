from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Table, Column
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


# Multi-product / multi-variant targets of a standing discount
discount_products = Table(
    "discount_products",
    Base.metadata,
    Column("discount_id", Integer, ForeignKey("discounts.id", ondelete="CASCADE"), primary_key=True),
    Column("product_id", Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)

discount_variants = Table(
    "discount_variants",
    Base.metadata,
    Column("discount_id", Integer, ForeignKey("discounts.id", ondelete="CASCADE"), primary_key=True),
    Column("variant_id", Integer, ForeignKey("product_variants.id", ondelete="CASCADE"), primary_key=True),
)


class Discount(Base):
    """Standing ("shelf") discount.

    At most one targeting kind is populated: ``product_id``, ``variant_id``,
    ``products``, ``variants`` or ``category_id``. None of them means
    storewide. Use ``services.targeting.load_target`` rather than reading the
    columns directly.
    """

    __tablename__ = "discounts"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), index=True)
    title: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    percentage: Mapped[int] = mapped_column(Integer)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    start_date: Mapped[datetime] = mapped_column(DateTime)
    end_date: Mapped[datetime] = mapped_column(DateTime)
    available_online: Mapped[bool] = mapped_column(Boolean, default=True)
    available_in_store: Mapped[bool] = mapped_column(Boolean, default=True)

    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=True, index=True)
    variant_id: Mapped[int | None] = mapped_column(ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True, index=True)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id", ondelete="CASCADE"), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    shop = relationship("Shop")
    product = relationship("Product")
    variant = relationship("ProductVariant")
    category = relationship("Category")
    products = relationship("Product", secondary=discount_products)
    variants = relationship("ProductVariant", secondary=discount_variants)
