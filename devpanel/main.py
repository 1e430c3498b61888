"""DevPanel FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from devpanel.config import get_settings
from devpanel.repositories.duckdb_repo import DuckDBRepo
from devpanel.repositories.storage import StorageBackend

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown.

    On startup:
    - Load settings.
    - Open the DuckDB configuration store and initialize its schema.
    - Create the StorageBackend.
    - Store all of them on app.state for dependency injection.

    On shutdown:
    - Close DuckDB connection.
    """
    settings = get_settings()
    app.state.settings = settings

    # Configuration store
    db = DuckDBRepo(settings.db_path)
    db.initialize_schema()
    app.state.db = db

    # Storage
    app.state.storage = StorageBackend()

    logger.info(
        "DevPanel ready (board %s, host version %s)",
        settings.board_dir,
        settings.platform_version,
    )

    yield

    # Shutdown
    db.connection.execute("CHECKPOINT")
    db.close()


app = FastAPI(
    title="DevPanel",
    description="Developer tools for forum hooks, packages and archives",
    version="0.1.0",
    lifespan=lifespan,
)

# Router includes
from devpanel.routers import files, hooks, packages  # noqa: E402

app.include_router(hooks.router)
app.include_router(packages.router)
app.include_router(files.router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Simple health check endpoint."""
    return {"status": "ok"}
