from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


class OrderItem(Base):
    """Line snapshot taken at purchase time.

    The product/variant ids are informational only: catalog rows may be
    edited or deleted later and the line keeps its own copy of every field
    an invoice needs.
    """

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    variant_id: Mapped[int | None] = mapped_column(ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True, index=True)
    # survives SET NULL on variant_id, so a deleted variant never credits its parent
    variant_scoped: Mapped[bool] = mapped_column(Boolean, default=False)

    product_name: Mapped[str] = mapped_column(String(400))
    product_sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    product_barcode: Mapped[str | None] = mapped_column(String(100), nullable=True)
    product_options: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, default=1)
    original_price: Mapped[float] = mapped_column(Numeric(12, 2))
    unit_price: Mapped[float] = mapped_column(Numeric(12, 2))
    discount_percentage: Mapped[int] = mapped_column(Integer, default=0)
    discount_amount: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    # "DISCOUNT", "CODE" or None
    discount_source: Mapped[str | None] = mapped_column(String(10), nullable=True)
    tax_rate: Mapped[float] = mapped_column(Numeric(5, 2), default=0)
    tax_amount: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    total: Mapped[float] = mapped_column(Numeric(12, 2))

    order = relationship("Order", back_populates="items")
