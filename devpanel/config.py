"""DevPanel application configuration using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """DevPanel application settings.

    All fields can be overridden via environment variables with
    the DEVPANEL_ prefix (e.g., DEVPANEL_BOARD_DIR).  Host directories
    that are left unset are derived from ``board_dir`` the same way the
    forum lays them out.
    """

    db_path: Path = Path("data/devpanel.duckdb")

    # Host layout
    board_dir: Path = Path("forum")
    source_dir: Path | None = None
    packages_dir: Path | None = None
    theme_dir: Path | None = None
    avatar_dir: Path | None = None
    smileys_dir: Path | None = None
    platform_version: str = "2.1.4"

    # Hook registry
    hook_prefix: str = "integrate_"
    self_marker: str = "DevPanel"
    self_package_id: str = "devpanel:devpanel"
    show_all_hooks: bool = False
    show_all_packages: bool = False
    hooks_per_page: int = 20

    # Archives
    archive_extensions: list[str] = ["tgz", "zip", "tar"]
    archive_providers: list[str] = ["library", "process"]
    temp_prefix: str = "DevPanelTempArchive"
    upload_tmp_dir: Path | None = None
    cache_dir: Path | None = None
    allowed_paths: list[Path] = []  # Empty means no sandbox restriction
    stream_threshold: int = 4 * 1024 * 1024
    stream_chunk_size: int = 8192
    stale_archive_age: int = 3600

    model_config = {
        "env_prefix": "DEVPANEL_",
        "env_file": ".env",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _derive_host_dirs(self) -> "Settings":
        """Fill in host directories that were not configured explicitly."""
        if self.source_dir is None:
            self.source_dir = self.board_dir / "Sources"
        if self.packages_dir is None:
            self.packages_dir = self.board_dir / "Packages"
        if self.theme_dir is None:
            self.theme_dir = self.board_dir / "Themes" / "default"
        if self.avatar_dir is None:
            self.avatar_dir = self.board_dir / "avatars"
        if self.smileys_dir is None:
            self.smileys_dir = self.board_dir / "Smileys"
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings (singleton)."""
    return Settings()
