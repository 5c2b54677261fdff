"""
Shelf Planner Server
=====================

FastAPI server for staging and committing product placements on shelf
fixtures.

Features:
- Editing sessions with pending assign/clear changes per slot
- Bulk commit to the remote slot store with per-slot outcome reporting
- Reconciliation against the store after every commit
- Draft persistence so pending changes survive a restart
"""

import os
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Import services
from .services.storage_client import StorageClient, STORAGE_API_BASE_URL
from .services.catalog_client import CatalogClient, CATALOG_API_BASE_URL

# Import engine
from .engine.remote_cache import RemoteStateCache, RefreshConfig
from .engine.session_manager import SessionManager

# Import API routers
from .api import session_routes, product_routes


# Shared service instances
session_manager: SessionManager = None
storage_client: StorageClient = None
catalog_client: CatalogClient = None


def _refresh_config() -> RefreshConfig:
    return RefreshConfig(
        attempts=int(os.getenv("REFRESH_ATTEMPTS", "3")),
        backoff_seconds=float(os.getenv("REFRESH_BACKOFF_SECONDS", "0.5")),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global session_manager, storage_client, catalog_client

    logger.info("[SHELF-PLANNER] Starting up...")

    storage_client = StorageClient(
        timeout=30.0  # per request; a commit issues one request per slot
    )
    catalog_client = CatalogClient(timeout=30.0)

    cache = RemoteStateCache(storage_client, config=_refresh_config())

    sessions_dir = Path(os.getenv("SHELF_SESSIONS_DIR", Path(__file__).parent.parent / "sessions"))
    session_manager = SessionManager(cache, sessions_dir=sessions_dir)

    # Inject into route modules
    session_routes.session_manager = session_manager
    session_routes.catalog_client = catalog_client
    product_routes.catalog_client = catalog_client

    logger.info("[SHELF-PLANNER] Services initialized")

    yield

    # Cleanup
    logger.info("[SHELF-PLANNER] Shutting down...")
    if storage_client:
        await storage_client.close()
    if catalog_client:
        await catalog_client.close()


# Create FastAPI app
app = FastAPI(
    title="Shelf Planner",
    description="Stage, review and commit product placements on shelf fixtures",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(session_routes.router)
app.include_router(product_routes.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "shelf-planner",
        "storage_api": STORAGE_API_BASE_URL,
        "catalog_api": CATALOG_API_BASE_URL
    }


@app.get("/api/info")
async def api_info():
    """Get API information."""
    return {
        "service": "Shelf Planner",
        "version": "1.0.0",
        "slot_id_format": "{fixture_id}:{row}:{column}",
        "positions": "1-based row and column",
        "endpoints": {
            "sessions": "/api/sessions",
            "grid": "/api/sessions/{session_id}/grid",
            "stage": "/api/sessions/{session_id}/slots/{row}/{column}",
            "pending": "/api/sessions/{session_id}/pending",
            "commit": "/api/sessions/{session_id}/commit",
            "cancel": "/api/sessions/{session_id}/cancel",
            "refresh": "/api/sessions/{session_id}/refresh",
            "products": "/api/products?q="
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "shelf_planner.server:app",
        host="0.0.0.0",
        port=8080,
        reload=True
    )
