"""FastAPI dependency injection for the configuration store and services."""

from fastapi import Depends, Request

from devpanel.config import Settings
from devpanel.repositories.duckdb_repo import DuckDBRepo
from devpanel.repositories.settings_store import ConfigStore, DuckDBSettingsStore
from devpanel.repositories.storage import StorageBackend
from devpanel.services.archive_builder import ArchiveBuilder
from devpanel.services.file_sync import FileSyncEngine
from devpanel.services.hook_registry import HookRegistry
from devpanel.services.package_service import PackageService
from devpanel.services.path_tokens import PathTokens


def get_app_settings(request: Request) -> Settings:
    """Return the Settings instance stored on app.state."""
    return request.app.state.settings


def get_db(request: Request) -> DuckDBRepo:
    """Return the application-wide DuckDBRepo stored on app.state."""
    return request.app.state.db


def get_storage(request: Request) -> StorageBackend:
    """Return the application-wide StorageBackend stored on app.state."""
    return request.app.state.storage


def get_settings_store(db: DuckDBRepo = Depends(get_db)) -> ConfigStore:
    return DuckDBSettingsStore(db)


def get_path_tokens(settings: Settings = Depends(get_app_settings)) -> PathTokens:
    return PathTokens.from_settings(settings)


def get_hook_registry(
    store: ConfigStore = Depends(get_settings_store),
    settings: Settings = Depends(get_app_settings),
) -> HookRegistry:
    """Build a fresh HookRegistry for this request."""
    return HookRegistry(
        store,
        prefix=settings.hook_prefix,
        self_marker=settings.self_marker,
        show_all=settings.show_all_hooks,
    )


def get_sync_engine(storage: StorageBackend = Depends(get_storage)) -> FileSyncEngine:
    return FileSyncEngine(storage)


def get_archive_builder(
    storage: StorageBackend = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
) -> ArchiveBuilder:
    return ArchiveBuilder(storage, settings)


def get_package_service(
    settings: Settings = Depends(get_app_settings),
    storage: StorageBackend = Depends(get_storage),
    registry: HookRegistry = Depends(get_hook_registry),
    sync_engine: FileSyncEngine = Depends(get_sync_engine),
    tokens: PathTokens = Depends(get_path_tokens),
) -> PackageService:
    """Compose a PackageService from its collaborators."""
    return PackageService(
        settings=settings,
        storage=storage,
        registry=registry,
        sync_engine=sync_engine,
        tokens=tokens,
    )
