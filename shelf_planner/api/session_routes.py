"""
Session Routes
==============

API routes for fixture editing sessions: staging, review, cancel and commit.
"""

import logging
from typing import Optional, List
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field

from ..models.shelf_models import (
    BatchResult, ChangeKind, EditorState, Fixture, PendingChange, Product
)
from ..engine.errors import CommitRefreshFailed, OutOfBounds, RemoteUnavailable
from ..engine.reconciliation import ReconciliationEngine
from ..engine.session_manager import SessionManager
from ..services.catalog_client import CatalogClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/sessions", tags=["sessions"])

# Injected by server
session_manager: Optional[SessionManager] = None
catalog_client: Optional[CatalogClient] = None


def get_session_manager() -> SessionManager:
    """Dependency to get session manager."""
    if session_manager is None:
        raise HTTPException(500, "Session manager not initialized")
    return session_manager


def get_catalog_client() -> CatalogClient:
    """Dependency to get catalog client."""
    if catalog_client is None:
        raise HTTPException(500, "Catalog client not initialized")
    return catalog_client


def _get_engine(session_id: str, manager: SessionManager) -> ReconciliationEngine:
    engine = manager.get_engine(session_id)
    if engine is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return engine


class CreateSessionRequest(BaseModel):
    """Request to open an editing session on a fixture."""
    fixture_id: str = Field(min_length=1)
    rows: int = Field(ge=1)
    columns: int = Field(ge=1)
    name: Optional[str] = None


class SessionResponse(BaseModel):
    """Summary of an editing session."""
    session_id: str
    fixture: Fixture
    state: EditorState
    pending_assignments: int
    pending_removals: int
    loaded: bool
    refresh_error: Optional[str] = None


class GridCell(BaseModel):
    """One slot as the operator should see it."""
    slot_id: str
    row: int
    column: int
    product: Optional[Product] = None
    pending: Optional[ChangeKind] = None


class GridResponse(BaseModel):
    """Merged view of the whole fixture, one list per row."""
    session_id: str
    fixture: Fixture
    loaded: bool
    rows: List[List[GridCell]]


class StageRequest(BaseModel):
    """Product to place in a slot, null to clear it."""
    product_id: Optional[str] = None


class PendingResponse(BaseModel):
    """Pending changes awaiting commit."""
    session_id: str
    state: EditorState
    assignments: int
    removals: int
    changes: List[PendingChange]


class CommitResponse(BaseModel):
    """Outcome of a commit."""
    session_id: str
    result: BatchResult
    refresh_error: Optional[str] = None


def _summary(session_id: str, engine: ReconciliationEngine, refresh_error: Optional[str] = None) -> SessionResponse:
    assignments, removals = engine.pending_count()
    return SessionResponse(
        session_id=session_id,
        fixture=engine.fixture,
        state=engine.state,
        pending_assignments=assignments,
        pending_removals=removals,
        loaded=engine.snapshot() is not None,
        refresh_error=refresh_error
    )


def _pending(session_id: str, engine: ReconciliationEngine) -> PendingResponse:
    assignments, removals = engine.pending_count()
    return PendingResponse(
        session_id=session_id,
        state=engine.state,
        assignments=assignments,
        removals=removals,
        changes=engine.pending_changes()
    )


async def _resolve_product(product_id: str, catalog: CatalogClient) -> Product:
    response = await catalog.get_product(product_id)
    if not response.success:
        raise HTTPException(status_code=503, detail=f"Catalog unavailable: {response.error}")
    if not response.products:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return response.products[0]


@router.post("")
async def create_session(
    request: CreateSessionRequest,
    manager: SessionManager = Depends(get_session_manager)
) -> SessionResponse:
    """Open an editing session and load the fixture's current occupancy."""
    fixture = Fixture(id=request.fixture_id, rows=request.rows, columns=request.columns, name=request.name)
    session_id = manager.create_session(fixture)
    engine = _get_engine(session_id, manager)

    refresh_error = None
    try:
        await engine.refresh()
    except RemoteUnavailable as e:
        # Session is still usable, the caller can retry the refresh
        refresh_error = str(e)

    return _summary(session_id, engine, refresh_error)


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager)
) -> SessionResponse:
    """Get session summary."""
    return _summary(session_id, _get_engine(session_id, manager))


@router.delete("/{session_id}")
async def close_session(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager)
):
    """Close a session, discarding any pending changes."""
    if not manager.close_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"message": "Session closed", "session_id": session_id}


@router.get("/{session_id}/grid")
async def get_grid(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager)
) -> GridResponse:
    """Merged view of every slot: pending intent over the remote snapshot."""
    engine = _get_engine(session_id, manager)
    fixture = engine.fixture

    rows: List[List[GridCell]] = [[] for _ in range(fixture.rows)]
    for slot_id, product in engine.merged_grid():
        row, column = engine.index.position(slot_id)
        change = engine.pending.get(slot_id)
        rows[row - 1].append(GridCell(
            slot_id=slot_id,
            row=row,
            column=column,
            product=product,
            pending=change.kind if change else None
        ))

    return GridResponse(
        session_id=session_id,
        fixture=fixture,
        loaded=engine.snapshot() is not None,
        rows=rows
    )


@router.put("/{session_id}/slots/{row}/{column}")
async def stage_slot(
    session_id: str,
    row: int,
    column: int,
    request: StageRequest,
    manager: SessionManager = Depends(get_session_manager),
    catalog: CatalogClient = Depends(get_catalog_client)
) -> PendingResponse:
    """Stage a product drop (or a clear when product_id is null)."""
    engine = _get_engine(session_id, manager)
    if not engine.index.is_valid(row, column):
        raise HTTPException(status_code=400, detail=f"Position ({row}, {column}) is outside the fixture")

    if request.product_id is None:
        return await clear_slot(session_id, row, column, manager)

    product = await _resolve_product(request.product_id, catalog)
    engine.stage_at(row, column, product)

    manager.save_session(session_id)
    return _pending(session_id, engine)


@router.delete("/{session_id}/slots/{row}/{column}")
async def clear_slot(
    session_id: str,
    row: int,
    column: int,
    manager: SessionManager = Depends(get_session_manager)
) -> PendingResponse:
    """Stage a clear of one slot."""
    engine = _get_engine(session_id, manager)

    # A removal depends on what the store holds, so make sure we know
    if engine.snapshot() is None:
        try:
            await engine.refresh()
        except RemoteUnavailable as e:
            raise HTTPException(status_code=503, detail=str(e))

    try:
        engine.stage_at(row, column, None)
    except OutOfBounds as e:
        raise HTTPException(status_code=400, detail=str(e))

    manager.save_session(session_id)
    return _pending(session_id, engine)


@router.get("/{session_id}/pending")
async def get_pending(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager)
) -> PendingResponse:
    """List pending changes."""
    return _pending(session_id, _get_engine(session_id, manager))


@router.post("/{session_id}/cancel")
async def cancel_all(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager)
) -> PendingResponse:
    """Drop every pending change without contacting the store."""
    engine = _get_engine(session_id, manager)
    engine.cancel_all()
    manager.save_session(session_id)
    return _pending(session_id, engine)


@router.post("/{session_id}/commit")
async def commit_all(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager)
) -> CommitResponse:
    """Send every pending change to the store, then reload the fixture."""
    engine = _get_engine(session_id, manager)

    refresh_error = None
    try:
        result = await engine.commit_all()
    except CommitRefreshFailed as e:
        result = e.result
        refresh_error = str(e)
    finally:
        manager.save_session(session_id)

    logger.info(
        f"[SESSION-ROUTES] {session_id}: commit succeeded={result.succeeded}, failed={result.failed}"
    )
    return CommitResponse(session_id=session_id, result=result, refresh_error=refresh_error)


@router.post("/{session_id}/refresh")
async def refresh(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager)
) -> SessionResponse:
    """Reload the fixture from the store. Pending changes are kept."""
    engine = _get_engine(session_id, manager)
    try:
        await engine.refresh()
    except RemoteUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _summary(session_id, engine)
