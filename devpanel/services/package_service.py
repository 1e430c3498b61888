"""Package-level actions: listing, hook reinstall/uninstall, and file sync."""

from __future__ import annotations

import logging
import re
from pathlib import Path, PurePosixPath

from devpanel.config import Settings
from devpanel.models.package import FileOperation, HookDirective, PackageSummary
from devpanel.models.sync import SyncOperationResult, SyncReport, SyncReportRow, SyncStatus
from devpanel.repositories.storage import StorageBackend
from devpanel.services.file_sync import FileSyncEngine
from devpanel.services.hook_registry import HookRegistry
from devpanel.services.manifest_reader import (
    ManifestCorruptError,
    PackageManifest,
    PackageNotFoundError,
    extract_file_operations,
    extract_hooks,
    locate_manifest,
)
from devpanel.services.path_tokens import PathTokens
from devpanel.services.version_match import VersionMatcher, match_package_version

logger = logging.getLogger(__name__)

_PACKAGE_ID_RE = re.compile(r"[^a-z0-9\-_.]+", re.IGNORECASE)

SUCCESS_MESSAGES: dict[str, str] = {
    "reinstall": "Hooks reinstalled",
    "uninstall": "Hooks uninstalled",
    "syncin": "Files synced into the package",
    "syncout": "Files synced to the forum",
}
GENERIC_SUCCESS_MESSAGE = "Action completed"


class PackageService:
    """Resolves packages under ``packages_dir`` and runs actions on them."""

    def __init__(
        self,
        settings: Settings,
        storage: StorageBackend,
        registry: HookRegistry,
        sync_engine: FileSyncEngine,
        tokens: PathTokens,
        matcher: VersionMatcher = match_package_version,
    ) -> None:
        self.settings = settings
        self.storage = storage
        self.registry = registry
        self.sync_engine = sync_engine
        self.tokens = tokens
        self.matcher = matcher
        self.packages_dir = Path(settings.packages_dir).resolve()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve_package(self, package: str) -> Path:
        """Return the directory of *package*.

        The identifier is sanitized first; anything that resolves outside
        the packages directory or is not a directory raises
        :class:`PackageNotFoundError`.
        """
        cleaned = _PACKAGE_ID_RE.sub("-", package or "")
        if not cleaned or cleaned in (".", ".."):
            raise PackageNotFoundError(f"Invalid package identifier: {package!r}")

        package_dir = (self.packages_dir / cleaned).resolve()
        if not package_dir.is_relative_to(self.packages_dir) or package_dir == self.packages_dir:
            raise PackageNotFoundError(f"Invalid package identifier: {package!r}")
        if not self.storage.isdir(package_dir):
            raise PackageNotFoundError(f"Package {cleaned} does not exist")
        return package_dir

    def load_manifest(self, package: str) -> PackageManifest:
        """Locate and parse the manifest of *package*."""
        package_dir = self.resolve_package(package)
        base_dir = locate_manifest(self.storage, package_dir)
        if base_dir is None:
            raise PackageNotFoundError(f"Package {package} has no manifest")
        return PackageManifest.load(self.storage, base_dir)

    def list_packages(self) -> list[PackageSummary]:
        """List unpacked packages that carry a readable manifest.

        Archives are skipped, and so is this tool's own package unless
        ``show_all_packages`` is set.
        """
        if not self.storage.isdir(self.packages_dir):
            return []

        summaries: list[PackageSummary] = []
        for entry in sorted(
            self.storage.list_dir_detail(self.packages_dir), key=lambda e: e["name"].lower()
        ):
            if entry["type"] != "directory":
                continue
            try:
                manifest = self.load_manifest(entry["name"])
            except (PackageNotFoundError, ManifestCorruptError) as e:
                logger.debug("Skipping %s: %s", entry["name"], e)
                continue

            if (
                not self.settings.show_all_packages
                and manifest.id == self.settings.self_package_id
            ):
                continue

            summaries.append(
                PackageSummary(
                    filename=entry["name"],
                    id=manifest.id,
                    name=manifest.name,
                    version=manifest.version,
                    type=manifest.type,
                )
            )
        return summaries

    def _active_block(self, manifest: PackageManifest):
        return manifest.select_install_block(self.settings.platform_version, self.matcher)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def package_hooks(self, package: str) -> list[HookDirective]:
        """Return the hook directives of the active install block."""
        manifest = self.load_manifest(package)
        return extract_hooks(self._active_block(manifest))

    def _apply_hook(self, hook: HookDirective, install: bool) -> bool:
        # A reverse directive removes on install and adds on uninstall.
        if install != hook.reverse:
            return self.registry.add_integration_function(
                hook.hook_name, hook.callable, hook.source_file, hook.is_method
            )
        return self.registry.remove_integration_function(
            hook.hook_name, hook.callable, hook.source_file, hook.is_method
        )

    def uninstall_hooks(self, package: str) -> int:
        """Undo the package's hook directives; returns how many changed the store."""
        hooks = self.package_hooks(package)
        changed = sum(self._apply_hook(hook, install=False) for hook in hooks)
        self.registry.records(rebuild=True)
        logger.info("Uninstalled hooks of %s (%d changed)", package, changed)
        return changed

    def reinstall_hooks(self, package: str) -> int:
        """Uninstall then install the package's hook directives."""
        hooks = self.package_hooks(package)
        for hook in hooks:
            self._apply_hook(hook, install=False)
        changed = sum(self._apply_hook(hook, install=True) for hook in hooks)
        self.registry.records(rebuild=True)
        logger.info("Reinstalled hooks of %s (%d applied)", package, changed)
        return changed

    # ------------------------------------------------------------------
    # File sync
    # ------------------------------------------------------------------

    def file_operations(self, package: str) -> list[FileOperation]:
        manifest = self.load_manifest(package)
        return extract_file_operations(
            self._active_block(manifest), manifest.base_dir, self.tokens
        )

    def sync_files(self, package: str, reverse: bool) -> list[SyncOperationResult]:
        """Copy the package's files.

        ``reverse=True`` pulls the live install into the package ("sync in"),
        ``reverse=False`` pushes the package to the live install ("sync out").
        """
        return self.sync_engine.sync(self.file_operations(package), reverse=reverse)

    def build_report(
        self, package: str, direction: str, results: list[SyncOperationResult]
    ) -> SyncReport:
        """Itemize the operations that did not succeed, with tokenized paths."""
        failures = [
            SyncReportRow(
                file=PurePosixPath(r.source).name,
                source_dir=self.tokens.collapse(PurePosixPath(r.source).parent),
                destination=self.tokens.collapse(r.destination),
                writable=r.writable,
                result=r.result,
            )
            for r in results
            if r.result is not SyncStatus.SUCCEEDED
        ]
        return SyncReport(
            package=package,
            direction=direction,
            success=not failures,
            failures=failures,
            retry_url=f"/packages/{package}/sync/{direction}",
        )


def success_message(action: str | None) -> str | None:
    """Return the message for a completed *action*, or a generic one."""
    if not action:
        return None
    return SUCCESS_MESSAGES.get(action, GENERIC_SUCCESS_MESSAGE)
