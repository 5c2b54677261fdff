"""
Catalog Client
==============

Client for the product catalog service that supplies the products an
operator can place on a shelf.
"""

import os
import logging
import ssl
import certifi
import aiohttp
from typing import Any, Iterable, List, Optional
from urllib.parse import quote
from pydantic import BaseModel, Field

from ..models.shelf_models import Product
from .storage_client import parse_product

logger = logging.getLogger(__name__)

CATALOG_API_BASE_URL = os.getenv(
    "CATALOG_API_URL",
    "http://localhost:8000/api"
)


class CatalogResponse(BaseModel):
    """Response from catalog operations."""
    success: bool
    products: List[Product] = Field(default_factory=list)
    error: Optional[str] = None


def filter_products(products: Iterable[Product], term: Optional[str]) -> List[Product]:
    """Case-insensitive match on name, category or code."""
    needle = (term or "").strip().lower()
    if not needle:
        return list(products)
    return [
        p for p in products
        if any(needle in (field or "").lower() for field in (p.name, p.category, p.code))
    ]


def _product_list(data: Any) -> List[Product]:
    # The catalog answers with either a bare list or {"products": [...], "total": ...}
    items = data.get("products", []) if isinstance(data, dict) else data
    return [p for p in (parse_product(item) for item in items) if p is not None]


class CatalogClient:
    """Client for the product catalog API."""

    def __init__(self, base_url: Optional[str] = None, timeout: float = 30.0):
        self.timeout = timeout
        self._session = None
        self.base_url = (base_url or CATALOG_API_BASE_URL).rstrip("/")
        logger.info(f"[CATALOG-CLIENT] Initialized with timeout={timeout}, url={self.base_url}")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            connector = aiohttp.TCPConnector(ssl=ssl_context)
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                connector=connector
            )
        return self._session

    async def close(self):
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def list_products(self) -> CatalogResponse:
        """Fetch the whole catalog."""
        try:
            session = await self._get_session()
            async with session.get(f"{self.base_url}/products") as resp:
                if resp.status == 200:
                    products = _product_list(await resp.json())
                    logger.info(f"[CATALOG-CLIENT] Loaded {len(products)} products")
                    return CatalogResponse(success=True, products=products)
                error_text = await resp.text()
                logger.error(f"[CATALOG-CLIENT] Error listing products: {resp.status}")
                return CatalogResponse(
                    success=False,
                    error=f"Catalog error: {resp.status} - {error_text[:200]}"
                )
        except aiohttp.ClientError as e:
            logger.error(f"[CATALOG-CLIENT] Connection error: {e}")
            return CatalogResponse(success=False, error=f"Connection error: {str(e)}")
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"[CATALOG-CLIENT] Malformed catalog payload: {e}")
            return CatalogResponse(success=False, error=f"Malformed response: {str(e)}")

    async def get_product(self, product_id: str) -> CatalogResponse:
        """Fetch one product. Unknown ids give a successful empty response."""
        url = f"{self.base_url}/products/{quote(product_id, safe='')}"
        try:
            session = await self._get_session()
            async with session.get(url) as resp:
                if resp.status == 200:
                    product = parse_product(await resp.json())
                    return CatalogResponse(success=True, products=[product] if product else [])
                if resp.status == 404:
                    return CatalogResponse(success=True)
                error_text = await resp.text()
                logger.error(f"[CATALOG-CLIENT] Error fetching product {product_id}: {resp.status}")
                return CatalogResponse(
                    success=False,
                    error=f"Catalog error: {resp.status} - {error_text[:200]}"
                )
        except aiohttp.ClientError as e:
            logger.error(f"[CATALOG-CLIENT] Connection error: {e}")
            return CatalogResponse(success=False, error=f"Connection error: {str(e)}")
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"[CATALOG-CLIENT] Malformed product payload: {e}")
            return CatalogResponse(success=False, error=f"Malformed response: {str(e)}")

    async def search(self, term: Optional[str]) -> CatalogResponse:
        """Products whose name, category or code contain ``term``."""
        response = await self.list_products()
        if not response.success:
            return response
        return CatalogResponse(success=True, products=filter_products(response.products, term))
