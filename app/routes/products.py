# app/routes/products.py
"""
JSON CRUD for products.

Every write goes through ProductService, whose stock hook schedules the
automatic low-stock dispatch as a background task once the write has
committed and the response has been sent.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.exceptions import ProductCreationError, ProductNotFoundError, ProductServiceError
from app.dependencies import get_product_service
from app.schemas.product import ProductCreate, ProductRead, ProductUpdateRequest, StockUpdate
from app.services.product_service import ProductService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("", response_model=List[ProductRead])
async def list_products(
    q: Optional[str] = None,
    below: Optional[str] = Query(default=None, description="'threshold' to list only low-stock products"),
    service: ProductService = Depends(get_product_service),
):
    return await service.list_products(search=q, below_threshold=below == "threshold")


@router.post("", response_model=ProductRead, status_code=201)
async def create_product(
    product: ProductCreate,
    service: ProductService = Depends(get_product_service),
):
    try:
        return await service.create_product(product)
    except ProductCreationError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.put("", response_model=ProductRead)
async def update_product(
    product: ProductUpdateRequest,
    service: ProductService = Depends(get_product_service),
):
    try:
        return await service.update_product(product.id, product)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProductServiceError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("")
async def delete_product(
    id: int = Query(gt=0),
    service: ProductService = Depends(get_product_service),
):
    try:
        deleted = await service.delete_product(id)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"ok": True, "id": deleted.id}


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(
    product_id: int,
    service: ProductService = Depends(get_product_service),
):
    try:
        return await service.get_product(product_id)
    except ProductNotFoundError:
        raise HTTPException(status_code=404, detail="Product not found")


@router.patch("/{product_id}/stock", response_model=ProductRead)
async def update_stock(
    product_id: int,
    update: StockUpdate,
    service: ProductService = Depends(get_product_service),
):
    """Set the stock level (the 'adjust stock' action)."""
    try:
        return await service.update_stock(product_id, update.stock)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProductServiceError as e:
        logger.error("Stock update failed for product %s: %s", product_id, e)
        raise HTTPException(status_code=500, detail=str(e))
