"""
Product Routes
==============

Catalog lookup for the product picker.
"""

from fastapi import APIRouter, HTTPException
from typing import Optional, List
from pydantic import BaseModel

from ..models.shelf_models import Product

router = APIRouter(prefix="/api/products", tags=["products"])

# Injected by server
catalog_client = None


class ProductListResponse(BaseModel):
    """Products matching a search."""
    query: Optional[str] = None
    total: int
    products: List[Product]


@router.get("")
async def search_products(q: Optional[str] = None) -> ProductListResponse:
    """Search the catalog by name, category or code."""
    if not catalog_client:
        raise HTTPException(status_code=500, detail="Catalog client not initialized")

    response = await catalog_client.search(q)
    if not response.success:
        raise HTTPException(status_code=503, detail=f"Catalog unavailable: {response.error}")

    return ProductListResponse(query=q, total=len(response.products), products=response.products)
