"""
Schemas for product-related API endpoints. Refactored using Mixin.
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator, ConfigDict

from app.schemas.base import TimestampedSchema


class ProductValidationMixin(BaseModel):
    """
    --- Mixin class for shared validation logic ---
    Note: Placed common model_config here for DRYness
    """
    model_config = ConfigDict(
        from_attributes = True,
        populate_by_name = True
    )

    @field_validator('name', 'sku', mode='before', check_fields=False)
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class ProductBase(ProductValidationMixin):
    name: str = Field(min_length=1, max_length=255)
    sku: str = Field(min_length=1, max_length=64)
    stock: int = Field(default=0, ge=0)
    threshold: int = Field(default=0, ge=0)


class ProductCreate(ProductBase):
    pass


class ProductUpdate(ProductValidationMixin):
    """All fields optional; only the ones sent are applied."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    sku: Optional[str] = Field(default=None, min_length=1, max_length=64)
    stock: Optional[int] = Field(default=None, ge=0)
    threshold: Optional[int] = Field(default=None, ge=0)


class ProductUpdateRequest(ProductUpdate):
    """PUT body: the product id travels with the fields."""
    id: int = Field(gt=0)


class StockUpdate(ProductValidationMixin):
    stock: int = Field(ge=0)


class ProductRead(ProductBase, TimestampedSchema):
    id: int
    below_threshold: bool
