"""
Remote State Cache
==================

Holds the last authoritative snapshot of each fixture's slot occupancy.

Snapshots are only ever replaced wholesale by a successful refresh. A failed
refresh leaves the previous snapshot in place.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional
from pydantic import BaseModel, Field

from ..models.shelf_models import ChangeKind, Product, RemoteSnapshot, SlotId
from ..services.storage_client import StorageBackend
from .errors import NotLoaded, RemoteUnavailable
from .pending import PendingChangeSet

logger = logging.getLogger(__name__)


class RefreshConfig(BaseModel):
    """Retry policy for occupancy reads."""
    attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=0.5, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1)

    def delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return self.backoff_seconds * (self.backoff_factor ** (attempt - 1))


class RemoteStateCache:
    """Last-fetched remote snapshot per fixture."""

    def __init__(
        self,
        storage: StorageBackend,
        config: Optional[RefreshConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.storage = storage
        self.config = config or RefreshConfig()
        self._sleep = sleep
        self._snapshots: Dict[str, RemoteSnapshot] = {}

    async def refresh(self, fixture_id: str) -> RemoteSnapshot:
        """
        Re-read a fixture from the remote store and replace its snapshot.

        Retries up to ``config.attempts`` times with exponential backoff.

        Raises:
            RemoteUnavailable: every attempt failed; the old snapshot is kept
        """
        last_error: Optional[str] = None
        for attempt in range(1, self.config.attempts + 1):
            try:
                result = await self.storage.read_fixture_occupancy(fixture_id)
                if result.success:
                    snapshot = RemoteSnapshot(fixture_id=fixture_id, slots=dict(result.slots))
                else:
                    snapshot, last_error = None, result.error
            except Exception as e:
                # A backend that raises counts as one failed attempt
                logger.exception(f"[REMOTE-CACHE] Read of {fixture_id} raised")
                snapshot, last_error = None, f"{type(e).__name__}: {e}"

            if snapshot is not None:
                self._snapshots[fixture_id] = snapshot
                logger.info(
                    f"[REMOTE-CACHE] Refreshed {fixture_id}: "
                    f"{snapshot.occupied_count}/{len(snapshot.slots)} slots occupied"
                )
                return snapshot

            logger.warning(
                f"[REMOTE-CACHE] Refresh of {fixture_id} failed "
                f"(attempt {attempt}/{self.config.attempts}): {last_error}"
            )
            if attempt < self.config.attempts:
                await self._sleep(self.config.delay(attempt))

        logger.error(f"[REMOTE-CACHE] Giving up on {fixture_id}, keeping previous snapshot")
        raise RemoteUnavailable(fixture_id, last_error)

    def current(self, fixture_id: str) -> RemoteSnapshot:
        """Last successfully fetched snapshot. Raises NotLoaded."""
        snapshot = self._snapshots.get(fixture_id)
        if snapshot is None:
            raise NotLoaded(fixture_id)
        return snapshot

    def is_loaded(self, fixture_id: str) -> bool:
        return fixture_id in self._snapshots

    def invalidate(self, fixture_id: str) -> None:
        """Forget the snapshot of a fixture."""
        self._snapshots.pop(fixture_id, None)


def merged_view(
    slot_id: SlotId,
    pending: PendingChangeSet,
    snapshot: Optional[RemoteSnapshot]
) -> Optional[Product]:
    """What a slot shows right now: pending intent over last-known remote state."""
    change = pending.get(slot_id)
    if change is not None:
        if change.kind == ChangeKind.ASSIGN:
            return change.product
        return None
    if snapshot is None:
        return None
    return snapshot.product_at(slot_id)
