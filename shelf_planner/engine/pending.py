"""
Pending Change Set
==================

Staged, not yet committed, slot changes for one fixture.

Each slot maps to exactly one PendingChange (assign or remove), so a slot
can never be both pending assignment and pending removal.

Clearing a slot that has a staged assignment drops the assignment; if the
remote store also holds a product there, a removal takes its place so the
slot ends up empty after commit.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from ..models.shelf_models import ChangeKind, PendingChange, Product, SlotId

logger = logging.getLogger(__name__)


class PendingChangeSet:
    """Keyed mapping slot -> pending change, insertion ordered."""

    def __init__(self):
        self._changes: Dict[SlotId, PendingChange] = {}

    @classmethod
    def from_changes(cls, changes: Iterable[PendingChange]) -> "PendingChangeSet":
        """Rebuild a set from previously saved changes. Later entries win."""
        pending = cls()
        for change in changes:
            pending._changes.pop(change.slot_id, None)
            pending._changes[change.slot_id] = change
        return pending

    def stage_assignment(self, slot_id: SlotId, product: Product) -> None:
        """Write ``product`` into ``slot_id`` on commit. Last stage wins."""
        current = self._changes.get(slot_id)
        if current is not None and current.kind == ChangeKind.ASSIGN and current.product == product:
            return
        # Re-insert so ordering reflects the latest stage
        self._changes.pop(slot_id, None)
        self._changes[slot_id] = PendingChange.assign(slot_id, product)
        logger.debug(f"[PENDING] assign {slot_id} <- {product.id}")

    def stage_removal(self, slot_id: SlotId, committed: Optional[Product]) -> None:
        """
        Clear ``slot_id`` on commit.

        Args:
            slot_id: Slot to clear
            committed: Product the remote snapshot shows in the slot, if any
        """
        current = self._changes.get(slot_id)
        if current is not None and current.kind == ChangeKind.ASSIGN:
            del self._changes[slot_id]
            logger.debug(f"[PENDING] dropped staged assignment for {slot_id}")

        # An empty remote slot has nothing to undo
        if committed is None:
            return
        if slot_id not in self._changes:
            self._changes[slot_id] = PendingChange.remove(slot_id)
            logger.debug(f"[PENDING] remove {slot_id} (holds {committed.id})")

    def clear(self) -> None:
        self._changes.clear()

    def get(self, slot_id: SlotId) -> Optional[PendingChange]:
        return self._changes.get(slot_id)

    def assignments(self) -> List[PendingChange]:
        return [c for c in self._changes.values() if c.kind == ChangeKind.ASSIGN]

    def removals(self) -> List[PendingChange]:
        return [c for c in self._changes.values() if c.kind == ChangeKind.REMOVE]

    def changes(self) -> List[PendingChange]:
        """Assignments first, then removals, each in staging order."""
        return self.assignments() + self.removals()

    def pending_count(self) -> Tuple[int, int]:
        """(assignments, removals)."""
        assignments = len(self.assignments())
        return assignments, len(self._changes) - assignments

    def is_empty(self) -> bool:
        return not self._changes

    def __len__(self) -> int:
        return len(self._changes)

    def __contains__(self, slot_id: object) -> bool:
        return slot_id in self._changes
