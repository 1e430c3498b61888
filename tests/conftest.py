"""Shared pytest fixtures for DevPanel tests."""

from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI

from devpanel.config import Settings
from devpanel.repositories.duckdb_repo import DuckDBRepo
from devpanel.repositories.settings_store import DuckDBSettingsStore
from devpanel.repositories.storage import StorageBackend
from devpanel.routers import files, hooks, packages
from devpanel.services.hook_registry import HookRegistry
from devpanel.services.path_tokens import PathTokens

SAMPLE_MANIFEST = """<?xml version="1.0"?>
<package-info xmlns="http://www.simplemachines.org/xml/package-info">
    <id>demo:demo_mod</id>
    <name>Demo Mod</name>
    <version>1.2.0</version>
    <type>modification</type>
    <install for="2.0 - 2.0.99">
        <hook hook="integrate_legacy" function="Legacy::old" />
    </install>
    <install for="2.1.*">
        <hook hook="integrate_actions" function="Demo::actions" file="$sourcedir/Demo.php" />
        <hook hook="integrate_menu_buttons" function="Demo::menu" object="true" />
        <hook hook="integrate_pre_load" function="Obsolete::load" reverse="true" />
        <require-file name="Sources/Demo.php" destination="$sourcedir" />
        <require-dir name="demo_assets" destination="$themedir" />
    </install>
    <devtools>
        <packagename>{CUSTOMIZATION-NAME}_{VERSION-}</packagename>
        <exclusion>.git</exclusion>
        <exclusion>*.log</exclusion>
    </devtools>
</package-info>
"""

SELF_MANIFEST = """<?xml version="1.0"?>
<package-info>
    <id>devpanel:devpanel</id>
    <name>DevPanel</name>
    <version>0.1.0</version>
    <install>
        <hook hook="integrate_admin_areas" function="DevPanel::admin" />
    </install>
</package-info>
"""


@pytest.fixture()
def tmp_db_path(tmp_path: Path) -> Path:
    """Return a temporary DuckDB file path."""
    return tmp_path / "test.duckdb"


@pytest.fixture()
def db(tmp_db_path: Path) -> DuckDBRepo:
    """Create a DuckDBRepo with a temporary database, initialize schema, then close."""
    repo = DuckDBRepo(tmp_db_path)
    repo.initialize_schema()
    yield repo
    repo.close()


@pytest.fixture()
def store(db: DuckDBRepo) -> DuckDBSettingsStore:
    return DuckDBSettingsStore(db)


@pytest.fixture()
def registry(store: DuckDBSettingsStore) -> HookRegistry:
    """Registry with the default prefix that hides DevPanel's own hooks."""
    return HookRegistry(store, prefix="integrate_", self_marker="DevPanel")


@pytest.fixture()
def storage() -> StorageBackend:
    return StorageBackend()


@pytest.fixture()
def forum_dir(tmp_path: Path) -> Path:
    """Create an empty forum layout (Sources, Packages, Themes, avatars, Smileys)."""
    board = tmp_path / "forum"
    for sub in (
        "Sources",
        "Packages",
        "Themes/default/languages",
        "Themes/default/images",
        "avatars",
        "Smileys",
    ):
        (board / sub).mkdir(parents=True)
    return board


@pytest.fixture()
def sample_package(forum_dir: Path) -> Path:
    """Create Packages/demo_mod with a manifest, one source file and one asset dir."""
    pkg = forum_dir / "Packages" / "demo_mod"
    (pkg / "Sources").mkdir(parents=True)
    (pkg / "Sources" / "Demo.php").write_text("<?php\n// demo\n")
    assets = pkg / "demo_assets"
    (assets / "css").mkdir(parents=True)
    (assets / "demo.js").write_text("console.log('demo');\n")
    (assets / "css" / "demo.css").write_text(".demo { color: red; }\n")
    (pkg / "debug.log").write_text("noise\n")
    (pkg / ".git").mkdir()
    (pkg / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (pkg / "package-info.xml").write_text(SAMPLE_MANIFEST)
    return pkg


@pytest.fixture()
def self_package(forum_dir: Path) -> Path:
    """Create the DevPanel package itself, which listings hide by default."""
    pkg = forum_dir / "Packages" / "devpanel"
    pkg.mkdir()
    (pkg / "package-info.xml").write_text(SELF_MANIFEST)
    return pkg


@pytest.fixture()
def settings(tmp_db_path: Path, forum_dir: Path) -> Settings:
    return Settings(_env_file=None, db_path=tmp_db_path, board_dir=forum_dir)


@pytest.fixture()
def tokens(settings: Settings) -> PathTokens:
    return PathTokens.from_settings(settings)


@pytest.fixture()
async def app_client(
    db: DuckDBRepo, settings: Settings, storage: StorageBackend
) -> httpx.AsyncClient:
    """Create a FastAPI test app with the test DB and forum tree, yield an async HTTP client."""

    test_app = FastAPI()
    test_app.include_router(hooks.router)
    test_app.include_router(packages.router)
    test_app.include_router(files.router)

    @test_app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    test_app.state.settings = settings
    test_app.state.db = db
    test_app.state.storage = storage

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=test_app),
        base_url="http://testserver",
    ) as client:
        yield client
