"""
Reconciliation Engine
=====================

Orchestrates staging, cancel and commit for one fixture editing session.

Staging only touches the pending change set. ``commit_all`` sends every
pending change to the remote store as an independent call (the store has no
multi-slot transaction), clears the pending set whatever the outcome, and
re-reads the fixture so the local view reflects what the store actually
holds.
"""

import logging
from typing import List, Optional, Tuple

from ..models.shelf_models import (
    BatchResult, ChangeKind, EditorState, Fixture, OperationOutcome,
    PendingChange, Product, RemoteSnapshot, SlotId
)
from ..services.storage_client import StorageResult
from .errors import CommitRefreshFailed, RemoteUnavailable
from .pending import PendingChangeSet
from .remote_cache import RemoteStateCache, merged_view
from .slot_index import SlotIndex

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """
    Pending-change / optimistic-commit engine for one fixture.

    Not safe for overlapping commits: callers must not start a second
    ``commit_all`` or ``cancel_all`` while one is in flight.
    """

    def __init__(
        self,
        fixture: Fixture,
        cache: RemoteStateCache,
        pending: Optional[PendingChangeSet] = None
    ):
        self.fixture = fixture
        self.index = SlotIndex(fixture)
        self.cache = cache
        self.pending = pending or PendingChangeSet()

    @property
    def storage(self):
        return self.cache.storage

    @property
    def state(self) -> EditorState:
        return EditorState.CLEAN if self.pending.is_empty() else EditorState.DIRTY

    @property
    def is_dirty(self) -> bool:
        return not self.pending.is_empty()

    def snapshot(self) -> Optional[RemoteSnapshot]:
        """Current snapshot, or None before the first successful refresh."""
        if not self.cache.is_loaded(self.fixture.id):
            return None
        return self.cache.current(self.fixture.id)

    # Staging

    def stage(self, slot_id: SlotId, product: Optional[Product]) -> None:
        """
        Stage a change for one slot.

        A product stages an assignment, None stages a removal. This is the
        single entry point for drop and clear gestures.

        Raises:
            UnknownSlot: slot_id does not belong to this fixture
            NotLoaded: a removal was staged before the first refresh
        """
        self.index.validate(slot_id)
        if product is not None:
            self.pending.stage_assignment(slot_id, product)
            return

        # A removal depends on what the store holds, so it needs a snapshot
        snapshot = self.cache.current(self.fixture.id)
        self.pending.stage_removal(slot_id, snapshot.product_at(slot_id))

    def stage_at(self, row: int, column: int, product: Optional[Product]) -> SlotId:
        """Stage by grid position. Raises OutOfBounds."""
        slot_id = self.index.slot_id(row, column)
        self.stage(slot_id, product)
        return slot_id

    def cancel_all(self) -> int:
        """Drop every pending change. No remote calls. Returns how many were dropped."""
        dropped = len(self.pending)
        self.pending.clear()
        if dropped:
            logger.info(f"[ENGINE] {self.fixture.id}: cancelled {dropped} pending change(s)")
        return dropped

    # Reading

    def pending_count(self) -> Tuple[int, int]:
        return self.pending.pending_count()

    def pending_changes(self) -> List[PendingChange]:
        return self.pending.changes()

    def merged_view(self, slot_id: SlotId) -> Optional[Product]:
        """Product a caller should display in a slot. Raises UnknownSlot."""
        self.index.validate(slot_id)
        return merged_view(slot_id, self.pending, self.snapshot())

    def merged_grid(self) -> List[Tuple[SlotId, Optional[Product]]]:
        """Merged view of every slot, row-major."""
        snapshot = self.snapshot()
        return [
            (slot_id, merged_view(slot_id, self.pending, snapshot))
            for slot_id in self.index.slot_ids()
        ]

    async def refresh(self) -> RemoteSnapshot:
        """Reload the fixture from the remote store. Raises RemoteUnavailable."""
        return await self.cache.refresh(self.fixture.id)

    # Commit

    async def _apply(self, change: PendingChange) -> OperationOutcome:
        try:
            if change.kind == ChangeKind.ASSIGN:
                result: StorageResult = await self.storage.assign(change.product.id, change.slot_id)
            else:
                result = await self.storage.unassign(change.slot_id)
            success, error = result.success, result.error
        except Exception as e:
            # One broken call must not stop the rest of the batch
            logger.exception(f"[ENGINE] {change.kind.value} {change.slot_id} raised")
            success, error = False, f"{type(e).__name__}: {e}"

        if not success:
            logger.warning(f"[ENGINE] {change.kind.value} {change.slot_id} failed: {error}")
        return OperationOutcome(
            operation=change.kind,
            slot_id=change.slot_id,
            product=change.product,
            success=success,
            error=None if success else error
        )

    async def commit_all(self) -> BatchResult:
        """
        Send every pending change to the remote store, then refresh.

        Assignments go first, then removals, one call at a time. The pending
        set is cleared afterwards even when some calls failed; failed entries
        are not retried.

        Returns:
            BatchResult with counts and the per-entry outcome log

        Raises:
            CommitRefreshFailed: the writes ran but the follow-up refresh
                failed; the exception carries the BatchResult
        """
        changes = self.pending.changes()
        if not changes:
            return BatchResult()

        logger.info(f"[ENGINE] {self.fixture.id}: committing {len(changes)} change(s)")
        outcomes: List[OperationOutcome] = []
        try:
            for change in changes:
                outcomes.append(await self._apply(change))
        finally:
            self.pending.clear()

        result = BatchResult.from_outcomes(outcomes)
        logger.info(
            f"[ENGINE] {self.fixture.id}: commit done, "
            f"succeeded={result.succeeded}, failed={result.failed}"
        )

        try:
            await self.cache.refresh(self.fixture.id)
        except RemoteUnavailable as e:
            logger.error(f"[ENGINE] {self.fixture.id}: refresh after commit failed: {e.reason}")
            raise CommitRefreshFailed(self.fixture.id, result, e.reason) from e

        return result
