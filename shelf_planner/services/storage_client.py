"""
Storage API Client for Shelf Planner
=====================================

HTTP client for the remote slot store that holds the authoritative
slot -> product assignments of every fixture.

Endpoints used:
- PUT    /slots/{slot_id}/product      assign a product to a slot
- DELETE /slots/{slot_id}/product      clear a slot
- GET    /fixtures/{fixture_id}/slots  full occupancy of a fixture

The store tends to lag a little after a burst of writes, so callers that read
right after writing should be prepared to retry the read.
"""

import os
import logging
from typing import Any, Callable, Dict, Optional, Protocol
from urllib.parse import quote
import httpx
from pydantic import BaseModel, Field

from ..models.shelf_models import Product, SlotId

logger = logging.getLogger(__name__)

STORAGE_API_BASE_URL = os.getenv(
    "STORAGE_API_URL",
    "http://localhost:8000/api"
)


class StorageResult(BaseModel):
    """Outcome of a single slot write."""
    success: bool
    slot_id: SlotId
    error: Optional[str] = None


class OccupancyResult(BaseModel):
    """Outcome of a full fixture read."""
    success: bool
    fixture_id: str
    slots: Dict[SlotId, Optional[Product]] = Field(default_factory=dict)
    error: Optional[str] = None


class StorageBackend(Protocol):
    """Remote operations the reconciliation engine depends on."""

    async def assign(self, product_id: str, slot_id: SlotId) -> StorageResult:
        ...

    async def unassign(self, slot_id: SlotId) -> StorageResult:
        ...

    async def read_fixture_occupancy(self, fixture_id: str) -> OccupancyResult:
        ...


def _env_token() -> Optional[str]:
    return os.getenv("STORAGE_API_TOKEN") or None


def parse_product(data: Optional[Dict[str, Any]]) -> Optional[Product]:
    """Build a Product from a remote payload, None for an empty slot."""
    if not data:
        return None
    return Product(
        id=str(data["id"]),
        name=data.get("name") or str(data["id"]),
        category=data.get("category"),
        code=data.get("code"),
    )


class StorageClient:
    """
    Client for the remote slot store.

    Writes never raise: transport and HTTP errors come back as
    ``StorageResult(success=False, error=...)`` so a batch can keep going.
    Reads return ``OccupancyResult`` the same way.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or STORAGE_API_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.token_provider = token_provider or _env_token
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        logger.info(f"[STORAGE-CLIENT] Initialized with timeout={timeout}, url={self.base_url}")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> Dict[str, str]:
        token = self.token_provider()
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    def _slot_url(self, slot_id: SlotId) -> str:
        return f"{self.base_url}/slots/{quote(slot_id, safe='')}/product"

    async def assign(self, product_id: str, slot_id: SlotId) -> StorageResult:
        """Write ``product_id`` into ``slot_id``, overwriting the current product."""
        url = self._slot_url(slot_id)
        logger.debug(f"[STORAGE-CLIENT] PUT {url} product={product_id}")

        try:
            client = await self._get_client()
            response = await client.put(url, json={"product_id": product_id}, headers=self._headers())
            response.raise_for_status()
            return StorageResult(success=True, slot_id=slot_id)

        except httpx.TimeoutException:
            logger.error(f"[STORAGE-CLIENT-TIMEOUT] assign {slot_id} timed out")
            return StorageResult(success=False, slot_id=slot_id, error="Request timed out")

        except httpx.HTTPStatusError as e:
            logger.error(f"[STORAGE-CLIENT-ERROR] assign {slot_id}: HTTP {e.response.status_code}")
            return StorageResult(
                success=False,
                slot_id=slot_id,
                error=f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            )

        except httpx.HTTPError as e:
            logger.error(f"[STORAGE-CLIENT-ERROR] assign {slot_id}: {type(e).__name__}: {e}")
            return StorageResult(success=False, slot_id=slot_id, error=str(e) or type(e).__name__)

    async def unassign(self, slot_id: SlotId) -> StorageResult:
        """Clear ``slot_id``. An already empty slot (404) counts as success."""
        url = self._slot_url(slot_id)
        logger.debug(f"[STORAGE-CLIENT] DELETE {url}")

        try:
            client = await self._get_client()
            response = await client.delete(url, headers=self._headers())
            if response.status_code == 404:
                logger.info(f"[STORAGE-CLIENT] {slot_id} already empty")
                return StorageResult(success=True, slot_id=slot_id)
            response.raise_for_status()
            return StorageResult(success=True, slot_id=slot_id)

        except httpx.TimeoutException:
            logger.error(f"[STORAGE-CLIENT-TIMEOUT] unassign {slot_id} timed out")
            return StorageResult(success=False, slot_id=slot_id, error="Request timed out")

        except httpx.HTTPStatusError as e:
            logger.error(f"[STORAGE-CLIENT-ERROR] unassign {slot_id}: HTTP {e.response.status_code}")
            return StorageResult(
                success=False,
                slot_id=slot_id,
                error=f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            )

        except httpx.HTTPError as e:
            logger.error(f"[STORAGE-CLIENT-ERROR] unassign {slot_id}: {type(e).__name__}: {e}")
            return StorageResult(success=False, slot_id=slot_id, error=str(e) or type(e).__name__)

    async def read_fixture_occupancy(self, fixture_id: str) -> OccupancyResult:
        """Read every slot of a fixture with its current product."""
        url = f"{self.base_url}/fixtures/{quote(fixture_id, safe='')}/slots"
        logger.info(f"[STORAGE-CLIENT] Reading occupancy of {fixture_id}")

        try:
            client = await self._get_client()
            response = await client.get(url, headers=self._headers())
            response.raise_for_status()

            data = response.json()
            if not isinstance(data, dict):
                raise TypeError(f"expected an object, got {type(data).__name__}")
            slots = {
                str(entry["slot_id"]): parse_product(entry.get("product"))
                for entry in data.get("slots", [])
            }
            logger.info(f"[STORAGE-CLIENT-OK] fixture={fixture_id}, slots={len(slots)}")
            return OccupancyResult(success=True, fixture_id=fixture_id, slots=slots)

        except httpx.TimeoutException:
            logger.error(f"[STORAGE-CLIENT-TIMEOUT] occupancy read for {fixture_id} timed out")
            return OccupancyResult(success=False, fixture_id=fixture_id, error="Request timed out")

        except httpx.HTTPStatusError as e:
            logger.error(f"[STORAGE-CLIENT-ERROR] occupancy {fixture_id}: HTTP {e.response.status_code}")
            return OccupancyResult(
                success=False,
                fixture_id=fixture_id,
                error=f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            )

        except httpx.HTTPError as e:
            logger.error(f"[STORAGE-CLIENT-ERROR] occupancy {fixture_id}: {type(e).__name__}: {e}")
            return OccupancyResult(success=False, fixture_id=fixture_id, error=str(e) or type(e).__name__)

        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"[STORAGE-CLIENT-ERROR] malformed occupancy payload for {fixture_id}: {e}")
            return OccupancyResult(
                success=False,
                fixture_id=fixture_id,
                error=f"Malformed response: {e}"
            )

    async def health_check(self) -> bool:
        """Check if the storage API is reachable."""
        try:
            client = await self._get_client()
            response = await client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"[STORAGE-CLIENT-HEALTH] Failed: {e}")
            return False
