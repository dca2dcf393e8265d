"""
Product model for the inventory system.

A product carries its current stock level and the threshold below which it is
considered low on stock. Alerting reads these values but never writes them.
"""

from sqlalchemy import Column, Integer, String, DateTime, Index, CheckConstraint
from sqlalchemy.sql import func

from ..database import Base


class Product(Base):
    __tablename__ = "products"

    # Primary Key and Timestamps
    id = Column(Integer, primary_key=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    # Core Product Information
    name = Column(String(255), nullable=False, index=True)
    sku = Column(String(64), nullable=False, unique=True, index=True)

    # Stock
    stock = Column(Integer, nullable=False, default=0, server_default="0", index=True)
    threshold = Column(Integer, nullable=False, default=0, server_default="0", index=True)

    __table_args__ = (
        # Composite index for low stock queries
        Index("products_low_stock_idx", "stock", "threshold"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("threshold >= 0", name="ck_products_threshold_non_negative"),
    )

    @property
    def below_threshold(self) -> bool:
        """True when the product should raise a low-stock alert."""
        return (self.stock or 0) < (self.threshold or 0)

    def __repr__(self):
        return f"<Product {self.sku} stock={self.stock} threshold={self.threshold}>"
