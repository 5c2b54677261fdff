"""
Shelf Models for Shelf Planner
===============================

Models for fixtures, products, remote snapshots, pending changes and
commit results.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import datetime

# Stable identifier of one slot, derived by SlotIndex
SlotId = str


class Fixture(BaseModel):
    """A storage fixture laid out as a rows x columns grid of slots."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    rows: int = Field(ge=1)
    columns: int = Field(ge=1)
    name: Optional[str] = None

    @property
    def slot_count(self) -> int:
        return self.rows * self.columns


class Product(BaseModel):
    """Catalog product reference. Never mutated by the engine."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: Optional[str] = None
    code: Optional[str] = None


class ChangeKind(str, Enum):
    """Kind of staged change for a slot."""
    ASSIGN = "assign"
    REMOVE = "remove"


class EditorState(str, Enum):
    """State of one fixture editing session."""
    CLEAN = "clean"
    DIRTY = "dirty"


class PendingChange(BaseModel):
    """What should happen to one slot on commit."""
    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    slot_id: SlotId
    product: Optional[Product] = None

    @model_validator(mode="after")
    def _check_product(self) -> "PendingChange":
        if self.kind == ChangeKind.ASSIGN and self.product is None:
            raise ValueError("assign change requires a product")
        if self.kind == ChangeKind.REMOVE and self.product is not None:
            raise ValueError("remove change cannot carry a product")
        return self

    @classmethod
    def assign(cls, slot_id: SlotId, product: Product) -> "PendingChange":
        return cls(kind=ChangeKind.ASSIGN, slot_id=slot_id, product=product)

    @classmethod
    def remove(cls, slot_id: SlotId) -> "PendingChange":
        return cls(kind=ChangeKind.REMOVE, slot_id=slot_id)


class RemoteSnapshot(BaseModel):
    """Slot occupancy of a fixture as last read from the remote store."""
    model_config = ConfigDict(frozen=True)

    fixture_id: str
    slots: Dict[SlotId, Optional[Product]] = Field(default_factory=dict)
    fetched_at: datetime = Field(default_factory=datetime.now)

    def product_at(self, slot_id: SlotId) -> Optional[Product]:
        """Product committed in a slot, None when empty or unknown."""
        return self.slots.get(slot_id)

    @property
    def occupied_count(self) -> int:
        return sum(1 for p in self.slots.values() if p is not None)


class OperationOutcome(BaseModel):
    """Result of one remote write issued during a commit."""
    model_config = ConfigDict(frozen=True)

    operation: ChangeKind
    slot_id: SlotId
    product: Optional[Product] = None
    success: bool
    error: Optional[str] = None


class BatchResult(BaseModel):
    """Tally of one commit. Immutable."""
    model_config = ConfigDict(frozen=True)

    succeeded: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    outcomes: Tuple[OperationOutcome, ...] = ()

    @classmethod
    def from_outcomes(cls, outcomes: List[OperationOutcome]) -> "BatchResult":
        succeeded = sum(1 for o in outcomes if o.success)
        return cls(
            succeeded=succeeded,
            failed=len(outcomes) - succeeded,
            outcomes=tuple(outcomes)
        )

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0

    @property
    def failures(self) -> List[OperationOutcome]:
        """Failed entries, in commit order."""
        return [o for o in self.outcomes if not o.success]
