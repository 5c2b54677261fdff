"""
Slot Index
==========

Single source of truth for slot identifier math.

A slot identifier is ``"{fixture_id}:{row}:{column}"`` with 1-based row and
column. Fixture ids may themselves contain ``:``, so parsing splits from
the right.
"""

from typing import Iterator, Tuple

from ..models.shelf_models import Fixture, SlotId
from .errors import OutOfBounds, UnknownSlot

SEPARATOR = ":"


def _in_bounds(fixture: Fixture, row: int, column: int) -> bool:
    return 1 <= row <= fixture.rows and 1 <= column <= fixture.columns


def slot_id(fixture: Fixture, row: int, column: int) -> SlotId:
    """Identifier of the slot at (row, column). Raises OutOfBounds."""
    if not _in_bounds(fixture, row, column):
        raise OutOfBounds(fixture.id, row, column, fixture.rows, fixture.columns)
    return f"{fixture.id}{SEPARATOR}{row}{SEPARATOR}{column}"


def position(fixture: Fixture, sid: SlotId) -> Tuple[int, int]:
    """(row, column) of a slot identifier. Raises UnknownSlot."""
    parts = sid.rsplit(SEPARATOR, 2) if isinstance(sid, str) else []
    if len(parts) != 3 or parts[0] != fixture.id:
        raise UnknownSlot(sid, fixture.id)

    row_text, column_text = parts[1], parts[2]
    # Only canonical decimal forms round-trip ("01" or "+1" were never produced)
    if not (row_text.isdigit() and column_text.isdigit()):
        raise UnknownSlot(sid, fixture.id)
    row, column = int(row_text), int(column_text)
    if str(row) != row_text or str(column) != column_text:
        raise UnknownSlot(sid, fixture.id)
    if not _in_bounds(fixture, row, column):
        raise UnknownSlot(sid, fixture.id)
    return row, column


class SlotIndex:
    """Slot identifier math bound to one fixture."""

    def __init__(self, fixture: Fixture):
        self.fixture = fixture

    def slot_id(self, row: int, column: int) -> SlotId:
        return slot_id(self.fixture, row, column)

    def position(self, sid: SlotId) -> Tuple[int, int]:
        return position(self.fixture, sid)

    def is_valid(self, row: int, column: int) -> bool:
        return _in_bounds(self.fixture, row, column)

    def contains(self, sid: SlotId) -> bool:
        """True if ``sid`` was produced by this index."""
        try:
            self.position(sid)
        except UnknownSlot:
            return False
        return True

    def validate(self, sid: SlotId) -> SlotId:
        """Return ``sid`` unchanged, raising UnknownSlot if it is foreign."""
        self.position(sid)
        return sid

    def slot_ids(self) -> Iterator[SlotId]:
        """Every slot of the fixture in row-major order."""
        for row in range(1, self.fixture.rows + 1):
            for column in range(1, self.fixture.columns + 1):
                yield self.slot_id(row, column)
