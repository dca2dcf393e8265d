"""
Purpose: Defines the data structure for events emitted after a stock mutation.
Contents:
StockChangeEvent (Pydantic Model): built once a product write has committed and handed to the
notification dispatcher. It carries the new stock value and the threshold so the dispatcher can
decide on its own whether the product crossed into low stock.
"""

from typing import Optional
from pydantic import Field, model_validator

from app.schemas.base import BaseSchema


class StockChangeEvent(BaseSchema):
    product_id: int = Field(alias="productId")
    sku: str
    name: str
    stock: int
    threshold: int
    below_threshold: Optional[bool] = Field(default=None, alias="belowThreshold")

    @model_validator(mode="after")
    def derive_below_threshold(self):
        if self.below_threshold is None:
            self.below_threshold = self.stock < self.threshold
        return self

    @classmethod
    def from_product(cls, product) -> "StockChangeEvent":
        return cls(
            product_id=product.id,
            sku=product.sku,
            name=product.name,
            stock=product.stock,
            threshold=product.threshold,
            below_threshold=product.stock < product.threshold,
        )
