"""
Purpose: The central service for managing the core Product entity.

Provides standard CRUD operations plus stock updates and SKU existence checks.
It returns data using Pydantic schemas (ProductRead) and raises the product
exceptions from app.core.exceptions.

Stock changes are announced through the optional on_stock_change hook. The
hook is only called after the write has committed, and a failing hook is
logged and ignored so it can never undo or fail the mutation.
"""

import inspect
import logging
from typing import Any, Callable, List, Optional

from sqlalchemy import select, exists, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ProductCreationError, ProductNotFoundError, ProductServiceError
from app.core.utils import model_to_schema, models_to_schemas
from app.integrations.events import StockChangeEvent
from app.models.product import Product
from app.schemas.notifications import LowStockItem
from app.schemas.product import ProductCreate, ProductRead, ProductUpdate

logger = logging.getLogger(__name__)

StockChangeHook = Callable[[StockChangeEvent], Any]


class ProductService:
    def __init__(self, db: AsyncSession, on_stock_change: Optional[StockChangeHook] = None):
        self.db = db
        self.on_stock_change = on_stock_change

    async def sku_exists(self, sku: str, exclude_id: Optional[int] = None) -> bool:
        """Check if a SKU already exists (optionally ignoring one product)."""
        condition = Product.sku == sku
        if exclude_id is not None:
            condition = condition & (Product.id != exclude_id)
        result = await self.db.scalar(select(exists().where(condition)))
        return bool(result)

    async def list_products(
        self,
        search: Optional[str] = None,
        below_threshold: bool = False,
    ) -> List[ProductRead]:
        """
        List products ordered by id.

        Args:
            search: Case-insensitive match on name or SKU
            below_threshold: Only products whose stock is under their threshold
        """
        query = select(Product)

        if search and search.strip():
            search_term = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Product.name.ilike(search_term),
                    Product.sku.ilike(search_term),
                )
            )

        if below_threshold:
            query = query.filter(Product.stock < Product.threshold)

        result = await self.db.execute(query.order_by(Product.id))
        return await models_to_schemas(list(result.scalars().all()), ProductRead)

    async def list_low_stock(self) -> List[LowStockItem]:
        """Products below threshold, lowest stock first."""
        query = (
            select(Product)
            .where(Product.stock < Product.threshold)
            .order_by(Product.stock, Product.id)
        )
        result = await self.db.execute(query)
        return await models_to_schemas(list(result.scalars().all()), LowStockItem)

    async def get_product(self, product_id: int) -> ProductRead:
        """
        Retrieves a product by ID.

        Raises:
            ProductNotFoundError: If product not found
        """
        product = await self._get_model(product_id)
        return await model_to_schema(product, ProductRead)

    async def create_product(self, product_data: ProductCreate) -> ProductRead:
        """
        Creates a product. A new product that starts below its threshold
        triggers the stock hook like any other stock change.

        Raises:
            ProductCreationError: If the SKU is taken or the insert fails
        """
        if await self.sku_exists(product_data.sku):
            raise ProductCreationError(f"SKU '{product_data.sku}' already exists")

        product = Product(**product_data.model_dump())
        self.db.add(product)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ProductCreationError(f"Failed to create product: {str(e)}")

        await self.db.refresh(product)
        await self._emit(product)
        return await model_to_schema(product, ProductRead)

    async def update_product(self, product_id: int, product_data: ProductUpdate) -> ProductRead:
        """
        Update a product. Only fields that were sent are applied.

        Raises:
            ProductNotFoundError: If product not found
            ProductServiceError: If the new SKU belongs to another product
        """
        product = await self._get_model(product_id)
        previous_stock = product.stock

        update_data = product_data.model_dump(exclude_unset=True, exclude={"id"})
        new_sku = update_data.get("sku")
        if new_sku and new_sku != product.sku and await self.sku_exists(new_sku, exclude_id=product_id):
            raise ProductServiceError(f"SKU '{new_sku}' already exists")

        for key, value in update_data.items():
            if value is not None and hasattr(product, key):
                setattr(product, key, value)

        await self._commit_update(product)

        if product.stock != previous_stock:
            await self._emit(product)
        return await model_to_schema(product, ProductRead)

    async def update_stock(self, product_id: int, stock: int) -> ProductRead:
        """Set a product's stock level. Always announces the change."""
        product = await self._get_model(product_id)
        product.stock = stock

        await self._commit_update(product)
        await self._emit(product)
        return await model_to_schema(product, ProductRead)

    async def delete_product(self, product_id: int) -> ProductRead:
        """
        Delete a product.

        Returns:
            The product as it was before deletion

        Raises:
            ProductNotFoundError: If product not found
        """
        product = await self._get_model(product_id)
        deleted = await model_to_schema(product, ProductRead)

        await self.db.delete(product)
        await self.db.commit()
        return deleted

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _get_model(self, product_id: int) -> Product:
        result = await self.db.execute(select(Product).where(Product.id == product_id))
        product = result.scalar_one_or_none()
        if not product:
            raise ProductNotFoundError(f"Product with ID {product_id} not found")
        return product

    async def _commit_update(self, product: Product) -> None:
        product_id = product.id
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ProductServiceError(f"Failed to update product {product_id}: {str(e)}")
        await self.db.refresh(product)

    async def _emit(self, product: Product) -> None:
        if self.on_stock_change is None:
            return
        try:
            result = self.on_stock_change(StockChangeEvent.from_product(product))
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.error("Stock change hook failed for product %s", product.id, exc_info=True)
