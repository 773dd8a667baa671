from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, Integer, Numeric, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base
from models.category import product_categories


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(200), index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    barcode: Mapped[str | None] = mapped_column(String(100), nullable=True)
    price: Mapped[float] = mapped_column(Numeric(12, 2))
    cost: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
    # Only meaningful when the product has no variants
    inventory: Mapped[int] = mapped_column(Integer, default=0)
    tva: Mapped[float] = mapped_column(Numeric(5, 2), default=0)
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    shop = relationship("Shop")
    categories = relationship("Category", secondary=product_categories, back_populates="products")
    variants = relationship("ProductVariant", cascade="all, delete-orphan", back_populates="product")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(200))
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    barcode: Mapped[str | None] = mapped_column(String(100), nullable=True)
    price: Mapped[float] = mapped_column(Numeric(12, 2))
    cost: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
    inventory: Mapped[int] = mapped_column(Integer, default=0)
    # Falls back to the product's tva when unset
    tva: Mapped[float | None] = mapped_column(Numeric(5, 2), nullable=True)
    options: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product", back_populates="variants")
