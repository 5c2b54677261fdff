"""
Engine Errors
=============

Exceptions raised by the slot index, the remote state cache and the
reconciliation engine.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..models.shelf_models import BatchResult


class ShelfPlannerError(Exception):
    """Base class for all shelf planner errors."""


class SlotIndexError(ShelfPlannerError, ValueError):
    """Invalid slot coordinates or identifier. Programming/input error."""


class OutOfBounds(SlotIndexError):
    """Row or column outside the fixture grid."""

    def __init__(self, fixture_id: str, row: int, column: int, rows: int, columns: int):
        self.fixture_id = fixture_id
        self.row = row
        self.column = column
        super().__init__(
            f"Position ({row}, {column}) is outside fixture {fixture_id!r} "
            f"({rows} rows x {columns} columns)"
        )


class UnknownSlot(SlotIndexError):
    """Slot identifier not produced by this fixture's slot index."""

    def __init__(self, slot_id: str, fixture_id: str):
        self.slot_id = slot_id
        self.fixture_id = fixture_id
        super().__init__(f"Unknown slot {slot_id!r} for fixture {fixture_id!r}")


class RemoteUnavailable(ShelfPlannerError):
    """The remote store could not be read."""

    def __init__(self, fixture_id: str, reason: Optional[str] = None):
        self.fixture_id = fixture_id
        self.reason = reason
        message = f"Remote store unavailable for fixture {fixture_id!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class NotLoaded(ShelfPlannerError):
    """No snapshot has been fetched yet for the fixture."""

    def __init__(self, fixture_id: str):
        self.fixture_id = fixture_id
        super().__init__(f"No snapshot loaded for fixture {fixture_id!r}; refresh first")


class CommitRefreshFailed(RemoteUnavailable):
    """Writes were attempted but the follow-up refresh failed.

    ``result`` holds the tally of the writes. The pending set has already
    been cleared.
    """

    def __init__(self, fixture_id: str, result: "BatchResult", reason: Optional[str] = None):
        super().__init__(fixture_id, reason)
        self.result = result
